"""Blockchain connector package for Gnosis chain interactions."""
from .async_multicall import (
    AsyncMulticallProvider,
    MulticallError,
    MulticallRequest,
    MulticallResult
)
from .provider import BlockchainProvider, ChainConfig

__all__ = [
    "AsyncMulticallProvider",
    "MulticallError",
    "MulticallRequest",
    "MulticallResult",
    "BlockchainProvider",
    "ChainConfig",
]
