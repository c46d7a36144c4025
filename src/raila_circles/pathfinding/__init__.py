"""Lending path discovery over the trust graph."""

from .path_models import (
    Address,
    PathKey,
    LenderCapacity,
    RelayConstraint,
    LendingPath,
    Profile,
    HopProfile,
    EnrichedPath,
    FrontierEntry,
    SearchFrontier
)
from .path_finder import (
    LendingPathFinder,
    PathFinderConfig,
    SearchStats,
    CancellationToken
)
from .path_enricher import (
    PathEnricher,
    ProfileCache
)
from .path_stream import (
    LendingPathStream,
    SearchSession,
    SearchState,
    StreamListener
)
from .sources import (
    TrustGraphSource,
    ChainStateReader,
    ProfileSource
)

__all__ = [
    "Address",
    "PathKey",
    "LenderCapacity",
    "RelayConstraint",
    "LendingPath",
    "Profile",
    "HopProfile",
    "EnrichedPath",
    "FrontierEntry",
    "SearchFrontier",
    "LendingPathFinder",
    "PathFinderConfig",
    "SearchStats",
    "CancellationToken",
    "PathEnricher",
    "ProfileCache",
    "LendingPathStream",
    "SearchSession",
    "SearchState",
    "StreamListener",
    "TrustGraphSource",
    "ChainStateReader",
    "ProfileSource"
]
