"""Off-chain data sources: Circles trust graph and profiles."""
from .circles_client import (
    CirclesRpcClient,
    CirclesRpcError,
    TrustRelation,
    TrustRelationType
)

__all__ = [
    "CirclesRpcClient",
    "CirclesRpcError",
    "TrustRelation",
    "TrustRelationType",
]
