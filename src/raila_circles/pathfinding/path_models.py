"""Shared data models for lending path discovery."""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from eth_utils import to_checksum_address, to_normalized_address

from ..exceptions import InvalidArgumentError
from .lending_math import (
    available_capacity,
    current_lent,
    format_apr,
    relay_rate_ceiling,
)


class Address(str):
    """Account identifier normalized to lower-case hex."""

    __slots__ = ()

    def __new__(cls, value: Any) -> "Address":
        if isinstance(value, Address):
            return value
        if not isinstance(value, str):
            raise InvalidArgumentError(f"Invalid address: {value!r}")
        try:
            normalized = to_normalized_address(value)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(f"Invalid address: {value!r}") from e
        return super().__new__(cls, normalized)

    def to_checksum(self) -> str:
        """Checksummed form for chain calls."""
        return to_checksum_address(self)

    def short(self) -> str:
        """Abbreviated form for display and logs."""
        return f"{self[:6]}...{self[-4:]}"


# Canonical identity of a lending path: its ordered address sequence
PathKey = Tuple[Address, ...]


@dataclass(frozen=True)
class LenderCapacity:
    """Snapshot of a lender's limits and live balances."""
    address: Address
    lending_cap: int
    min_lend_ir: int
    lent: int = 0
    owed_per_second: int = 0
    as_of: int = 0
    liquid_balance: int = 0
    borrowed: int = 0
    owes_per_second: int = 0

    def current_lent(self, now: int) -> int:
        """Outstanding principal including interest accrued since the snapshot."""
        return current_lent(self.lent, self.owed_per_second, self.as_of, now)

    def available(self, now: int) -> int:
        """Capacity-constrained principal this lender can supply."""
        return available_capacity(
            self.lending_cap,
            self.lent,
            self.owed_per_second,
            self.as_of,
            self.liquid_balance,
            now
        )


@dataclass(frozen=True)
class RelayConstraint:
    """Limits an address applies when relaying loans from upstream."""
    address: Address
    max_borrow_ir: int
    min_ir_margin: int
    borrow_cap: int = 0

    @property
    def relaying_enabled(self) -> bool:
        """A zero borrow cap disables relaying."""
        return self.borrow_cap > 0

    def rate_ceiling(self, outgoing_rate: int) -> Optional[int]:
        """Highest upstream rate that still leaves the required margin."""
        return relay_rate_ceiling(outgoing_rate, self.min_ir_margin, self.max_borrow_ir)


@dataclass(frozen=True)
class LendingPath:
    """A chain of lenders from a capacity source down to the borrower."""
    path: Tuple[Address, ...]
    irs: Tuple[int, ...]
    source_available: int
    discovered_at: float = field(default_factory=time.time, compare=False)

    def __post_init__(self):
        if len(self.path) < 2:
            raise InvalidArgumentError("A lending path needs a source and a borrower")
        if len(self.irs) != len(self.path) - 1:
            raise InvalidArgumentError(
                f"Expected {len(self.path) - 1} interest rates, got {len(self.irs)}"
            )

    @property
    def key(self) -> PathKey:
        return tuple(self.path)

    @property
    def source(self) -> Address:
        return self.path[0]

    @property
    def borrower(self) -> Address:
        return self.path[-1]

    @property
    def relayers(self) -> Tuple[Address, ...]:
        """Intermediate addresses between source and borrower."""
        return self.path[1:-1]

    @property
    def hop_count(self) -> int:
        return len(self.irs)

    @property
    def is_direct(self) -> bool:
        return self.hop_count == 1

    @property
    def final_ir(self) -> int:
        """Rate the borrower pays."""
        return self.irs[-1]

    def margins(self) -> List[int]:
        """Spread earned by each relayer (earn rate minus pay rate)."""
        return [earn - pay for pay, earn in zip(self.irs, self.irs[1:])]

    def borrow_args(self) -> Tuple[List[str], List[int]]:
        """
        Arguments for the lending module's borrow(amount, path, irs) call.

        The module takes the lender chain without the borrower, who is the
        transaction sender.
        """
        return [address.to_checksum() for address in self.path[:-1]], list(self.irs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": list(self.path),
            "irs": [str(rate) for rate in self.irs],
            "aprs": [format_apr(rate) for rate in self.irs],
            "source_available": str(self.source_available),
        }


@dataclass(frozen=True)
class Profile:
    """Human-readable metadata for an address."""
    name: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class HopProfile:
    """Profile metadata attached to one address of a path."""
    address: Address
    name: Optional[str] = None
    image_url: Optional[str] = None

    def merge(self, other: "HopProfile") -> "HopProfile":
        """Overlay known values from other, keeping existing ones it lacks."""
        return HopProfile(
            address=self.address,
            name=other.name if other.name is not None else self.name,
            image_url=other.image_url if other.image_url is not None else self.image_url
        )

    def display_name(self) -> str:
        return self.name or self.address.short()


@dataclass(frozen=True)
class EnrichedPath:
    """A lending path plus per-hop profile metadata."""
    path: LendingPath
    profiles: Tuple[HopProfile, ...]
    enriched: bool = False

    @classmethod
    def unenriched(cls, path: LendingPath) -> "EnrichedPath":
        return cls(
            path=path,
            profiles=tuple(HopProfile(address=address) for address in path.path),
            enriched=False
        )

    @property
    def key(self) -> PathKey:
        return self.path.key

    @property
    def source_name(self) -> Optional[str]:
        return self.profiles[0].name if self.profiles else None

    @property
    def source_image_url(self) -> Optional[str]:
        return self.profiles[0].image_url if self.profiles else None

    def merge(self, update: "EnrichedPath") -> "EnrichedPath":
        """Apply a later enrichment update without dropping known metadata."""
        if update.key != self.key:
            raise InvalidArgumentError("Cannot merge enrichment for a different path")
        profiles = tuple(
            current.merge(incoming)
            for current, incoming in zip(self.profiles, update.profiles)
        )
        return EnrichedPath(
            path=self.path,
            profiles=profiles,
            enriched=self.enriched or update.enriched
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.path.to_dict()
        data["profiles"] = [
            {"address": p.address, "name": p.name, "image_url": p.image_url}
            for p in self.profiles
        ]
        data["enriched"] = self.enriched
        return data


@dataclass(frozen=True)
class FrontierEntry:
    """
    A validated downstream chain that may be extended by one more upstream lender.

    `chain` starts at this entry's address and ends at the borrower; `irs` are
    the rates along it. `rate_ceiling` is the highest rate an upstream lender
    may charge this address (None means unconstrained, as for the borrower).
    """
    address: Address
    chain: Tuple[Address, ...]
    irs: Tuple[int, ...] = ()
    rate_ceiling: Optional[int] = None

    @classmethod
    def root(cls, borrower: Address) -> "FrontierEntry":
        return cls(address=borrower, chain=(borrower,))

    def accepts_rate(self, rate: int) -> bool:
        return self.rate_ceiling is None or rate <= self.rate_ceiling

    def contains(self, address: Address) -> bool:
        return address in self.chain

    def path_from(self, source: Address, rate: int, source_available: int) -> LendingPath:
        """Terminal path with `source` supplying this chain."""
        return LendingPath(
            path=(source,) + self.chain,
            irs=(rate,) + self.irs,
            source_available=source_available
        )

    def extend(self, relayer: Address, rate: int, constraint: RelayConstraint) -> Optional["FrontierEntry"]:
        """Chain with `relayer` lending into this one, or None if it cannot relay."""
        if not constraint.relaying_enabled:
            return None
        ceiling = constraint.rate_ceiling(rate)
        if ceiling is None:
            return None
        return FrontierEntry(
            address=relayer,
            chain=(relayer,) + self.chain,
            irs=(rate,) + self.irs,
            rate_ceiling=ceiling
        )


@dataclass
class SearchFrontier:
    """Candidate chains under evaluation at one search depth."""
    depth: int
    entries: List[FrontierEntry] = field(default_factory=list)

    @property
    def addresses(self) -> List[Address]:
        """Unique entry addresses in discovery order."""
        return list(dict.fromkeys(entry.address for entry in self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)
