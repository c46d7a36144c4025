"""Blockchain provider for the Gnosis chain connection."""
import logging
from typing import Any, Dict, Optional

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception
from web3.providers import AsyncHTTPProvider

from ..config.settings import Settings, settings as default_settings
from .async_multicall import AsyncMulticallProvider

logger = logging.getLogger(__name__)


class ChainConfig:
    """Configuration for a blockchain network."""

    def __init__(
        self,
        name: str,
        chain_id: int,
        rpc_url: str,
        multicall_address: Optional[str] = None,
        block_explorer_url: Optional[str] = None,
        native_currency: str = "xDAI"
    ):
        self.name = name
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.multicall_address = multicall_address
        self.block_explorer_url = block_explorer_url
        self.native_currency = native_currency


class BlockchainProvider:
    """Async provider for the chain the lending module is deployed on."""

    def __init__(self, settings: Settings = None):
        """Initialize the blockchain provider."""
        self.settings = settings or default_settings
        self.chain_config = ChainConfig(
            name="Gnosis",
            chain_id=self.settings.gnosis_chain_id,
            rpc_url=self.settings.gnosis_rpc_url,
            multicall_address=self.settings.multicall_address,
            block_explorer_url="https://gnosisscan.io"
        )
        self.w3: Optional[AsyncWeb3] = None
        self.multicall: Optional[AsyncMulticallProvider] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Connect to the RPC endpoint and set up multicall batching."""
        if self._initialized:
            return

        config = self.chain_config
        logger.info(f"Connecting to {config.name} at {config.rpc_url}")

        provider = AsyncHTTPProvider(
            config.rpc_url,
            request_kwargs={"timeout": self.settings.rpc_timeout_seconds}
        )
        w3 = AsyncWeb3(provider)

        chain_id = await w3.eth.chain_id
        if chain_id != config.chain_id:
            logger.warning(
                f"Chain ID mismatch for {config.name}: "
                f"expected {config.chain_id}, got {chain_id}"
            )

        self.w3 = w3
        self.multicall = AsyncMulticallProvider(
            w3=w3,
            multicall_address=config.multicall_address,
            max_batch_size=self.settings.multicall_batch_size
        )
        self._initialized = True
        logger.info(f"Connected to {config.name} (chain ID: {chain_id})")

    async def get_web3(self) -> AsyncWeb3:
        if not self._initialized:
            await self.initialize()
        return self.w3

    async def get_multicall_provider(self) -> AsyncMulticallProvider:
        if not self._initialized:
            await self.initialize()
        return self.multicall

    async def get_block_number(self) -> Optional[int]:
        """Get current block number."""
        w3 = await self.get_web3()
        try:
            return await w3.eth.block_number
        except Web3Exception as e:
            logger.error(f"Failed to get block number: {e}")
            return None

    async def get_chain_health(self) -> Dict[str, Any]:
        """Get health information for the chain connection."""
        config = self.chain_config
        if not self._initialized:
            return {
                "chain": config.name,
                "status": "not_connected",
                "connected": False
            }

        try:
            is_connected = await self.w3.is_connected()
            block_number = await self.get_block_number() if is_connected else None
            return {
                "chain": config.name,
                "chain_id": config.chain_id,
                "status": "healthy" if is_connected else "unhealthy",
                "connected": is_connected,
                "block_number": block_number
            }
        except Exception as e:
            return {
                "chain": config.name,
                "status": "error",
                "connected": False,
                "error": str(e)
            }

    async def close(self) -> None:
        """Close the chain connection."""
        if self.w3 is not None:
            disconnect = getattr(self.w3.provider, "disconnect", None)
            if disconnect is not None:
                try:
                    await disconnect()
                except Exception as e:
                    logger.error(f"Error closing {self.chain_config.name} connection: {e}")

        self.w3 = None
        self.multicall = None
        self._initialized = False
        logger.info("Blockchain connection closed")
