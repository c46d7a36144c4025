"""Error kinds surfaced by lending path discovery."""
from dataclasses import dataclass, field
from typing import List, Optional


class RailaError(Exception):
    """Base exception for lending path discovery errors."""
    pass


class InvalidArgumentError(RailaError, ValueError):
    """Bad borrower address or depth bound."""
    pass


class UpstreamUnavailableError(RailaError):
    """A collaborator (trust graph, chain state, profiles) was wholly unreachable."""
    
    def __init__(self, message: str, source: str = None):
        """
        Initialize upstream error.
        
        Args:
            message: Error message
            source: Collaborator that failed ("trust_graph", "chain_state", "profiles")
        """
        self.source = source
        super().__init__(message)
    
    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.source:
            return f"[{self.source}] {base_msg}"
        return base_msg


class EnrichmentError(RailaError):
    """Profile metadata could not be fetched for an address."""
    pass


@dataclass(frozen=True)
class LookupFailure:
    """Marker for a single failed entry inside a batched lookup."""
    address: str
    reason: str = "lookup failed"


@dataclass
class PartialLookupFailure:
    """A subset of a batch failed; the affected addresses were excluded."""
    stage: str
    depth: int
    addresses: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    
    @property
    def count(self) -> int:
        return len(self.addresses)
