"""Application settings and configuration."""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    host: str = Field(default="0.0.0.0", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")
    debug: bool = Field(default=False, description="Enable debug mode")

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
        alias="LOG_LEVEL"
    )

    # Chain settings
    gnosis_rpc_url: str = Field(
        default="https://rpc.gnosischain.com",
        description="Gnosis chain RPC URL",
        alias="GNOSIS_RPC_URL"
    )

    gnosis_chain_id: int = Field(
        default=100,
        description="Expected chain ID of the Gnosis RPC endpoint",
        alias="GNOSIS_CHAIN_ID"
    )

    raila_module_address: str = Field(
        default="0x0eE3B1A0544e1EA6b23fF1adb2b35Df5278B3914",
        description="Address of the Raila lending Safe module",
        alias="RAILA_MODULE_ADDRESS"
    )

    multicall_address: Optional[str] = Field(
        default="0xcA11bde05977b3631167028862bE2a173976CA11",
        description="Multicall3 contract address (unset to disable batching)",
        alias="MULTICALL_ADDRESS"
    )

    liquidity_token_address: str = Field(
        default="0x2a22f9c3b484c3629090FeED35F17Ff8F88f76F0",
        description="ERC20 token lent through the module (USDC.e on Gnosis)",
        alias="LIQUIDITY_TOKEN_ADDRESS"
    )

    liquidity_token_decimals: int = Field(
        default=6,
        description="Decimals of the liquidity token",
        alias="LIQUIDITY_TOKEN_DECIMALS"
    )

    rpc_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for RPC requests in seconds",
        alias="RPC_TIMEOUT_SECONDS"
    )

    multicall_batch_size: int = Field(
        default=100,
        description="Maximum calls per multicall batch",
        alias="MULTICALL_BATCH_SIZE"
    )

    # Circles settings
    circles_rpc_url: str = Field(
        default="https://rpc.aboutcircles.com/",
        description="Circles RPC URL for trust relations and profiles",
        alias="CIRCLES_RPC_URL"
    )

    profile_lookup_concurrency: int = Field(
        default=8,
        description="Maximum concurrent profile lookups per search",
        alias="PROFILE_LOOKUP_CONCURRENCY"
    )

    # Pathfinding settings
    max_path_depth: int = Field(
        default=3,
        description="Default maximum number of hops in a lending path",
        alias="MAX_PATH_DEPTH",
        ge=1
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields from .env
    }


# Global settings instance
settings = Settings()
