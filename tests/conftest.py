"""Shared fixtures and in-memory collaborators for the test suite."""
import asyncio
from typing import Dict, Iterable, List, Optional, Set

import pytest

from raila_circles.exceptions import EnrichmentError, LookupFailure, UpstreamUnavailableError
from raila_circles.pathfinding.lending_math import apr_to_rate
from raila_circles.pathfinding.path_models import Address, LenderCapacity, Profile, RelayConstraint
from raila_circles.pathfinding.sources import ChainStateReader, ProfileSource, TrustGraphSource

NOW = 1_700_000_000


def addr(n: int) -> Address:
    """Deterministic test address."""
    return Address("0x" + f"{n:040x}")


class FakeTrustGraph(TrustGraphSource):
    """Trust graph held in memory: trustee -> set of trusters."""

    def __init__(self):
        self.trusters: Dict[Address, Set[Address]] = {}
        self.failing: Set[Address] = set()
        self.gates: Dict[Address, asyncio.Event] = {}
        self.calls: List[Address] = []

    def trust(self, truster: Address, trustee: Address) -> None:
        self.trusters.setdefault(trustee, set()).add(truster)

    async def get_trusters_of(self, address: Address) -> Set[Address]:
        self.calls.append(address)
        gate = self.gates.get(address)
        if gate is not None:
            await gate.wait()
        if address in self.failing:
            raise UpstreamUnavailableError("trust lookup failed", source="trust_graph")
        return set(self.trusters.get(address, set()))


class FakeChainReader(ChainStateReader):
    """Lending module state held in memory."""

    def __init__(self):
        self.enabled: Set[Address] = set()
        self.capacities: Dict[Address, LenderCapacity] = {}
        self.constraints: Dict[Address, RelayConstraint] = {}
        self.failing: Dict[str, Set[Address]] = {"enabled": set(), "capacity": set(), "relay": set()}
        self.raise_on: Optional[str] = None
        self.calls: List[str] = []

    def add_lender(
        self,
        address: Address,
        apr: float,
        cap: int = 1_000,
        liquid: int = 5_000,
        lent: int = 0,
        relay_margin_apr: Optional[float] = None,
        max_borrow_apr: float = 20,
        borrow_cap: int = 10_000
    ) -> None:
        """Register an enabled lender and, with `relay_margin_apr`, make it a relayer."""
        self.enabled.add(address)
        self.capacities[address] = LenderCapacity(
            address=address,
            lending_cap=cap,
            min_lend_ir=apr_to_rate(apr),
            lent=lent,
            as_of=NOW,
            liquid_balance=liquid
        )
        if relay_margin_apr is not None:
            self.constraints[address] = RelayConstraint(
                address=address,
                max_borrow_ir=apr_to_rate(max_borrow_apr),
                min_ir_margin=apr_to_rate(relay_margin_apr),
                borrow_cap=borrow_cap
            )

    def _check(self, stage: str) -> None:
        self.calls.append(stage)
        if self.raise_on == stage:
            raise ConnectionError(f"{stage} batch unreachable")

    async def batch_check_module_enabled(self, addresses: Iterable[Address]):
        self._check("enabled")
        return {
            a: LookupFailure(a) if a in self.failing["enabled"] else a in self.enabled
            for a in addresses
        }

    async def batch_read_capacity(self, addresses: Iterable[Address]):
        self._check("capacity")
        return {
            a: LookupFailure(a) if a in self.failing["capacity"]
            else self.capacities.get(a, LenderCapacity(address=a, lending_cap=0, min_lend_ir=0))
            for a in addresses
        }

    async def batch_read_relay_constraint(self, addresses: Iterable[Address]):
        self._check("relay")
        return {
            a: LookupFailure(a) if a in self.failing["relay"]
            else self.constraints.get(a, RelayConstraint(address=a, max_borrow_ir=0, min_ir_margin=0))
            for a in addresses
        }


class FakeProfileSource(ProfileSource):
    """Profiles held in memory, counting lookups per address."""

    def __init__(self):
        self.profiles: Dict[Address, Profile] = {}
        self.failing: Set[Address] = set()
        self.gates: Dict[Address, asyncio.Event] = {}
        self.calls: Dict[Address, int] = {}

    async def get_profile(self, address: Address) -> Optional[Profile]:
        self.calls[address] = self.calls.get(address, 0) + 1
        gate = self.gates.get(address)
        if gate is not None:
            await gate.wait()
        await asyncio.sleep(0)
        if address in self.failing:
            raise EnrichmentError(f"profile lookup failed for {address}")
        return self.profiles.get(address)


@pytest.fixture
def trust_graph():
    return FakeTrustGraph()


@pytest.fixture
def chain_reader():
    return FakeChainReader()


@pytest.fixture
def profile_source():
    return FakeProfileSource()


@pytest.fixture
def borrower():
    return addr(0xB0)
