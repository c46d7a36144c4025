"""Unit tests for lending path data models."""
import pytest

from raila_circles.exceptions import InvalidArgumentError
from raila_circles.pathfinding.path_models import (
    Address,
    EnrichedPath,
    FrontierEntry,
    HopProfile,
    LenderCapacity,
    LendingPath,
    RelayConstraint,
    SearchFrontier,
)

from conftest import addr

CHECKSUMMED = "0x0eE3B1A0544e1EA6b23fF1adb2b35Df5278B3914"


class TestAddress:
    """Test address normalization."""

    def test_normalizes_to_lower_case(self):
        address = Address(CHECKSUMMED)
        assert address == CHECKSUMMED.lower()
        assert address.to_checksum() == CHECKSUMMED

    def test_equal_regardless_of_case(self):
        assert Address(CHECKSUMMED) == Address(CHECKSUMMED.lower())
        assert len({Address(CHECKSUMMED), Address(CHECKSUMMED.lower())}) == 1

    @pytest.mark.parametrize("value", ["", "0x1234", "not an address", None, 42])
    def test_invalid_address_raises(self, value):
        with pytest.raises(InvalidArgumentError):
            Address(value)

    def test_short(self):
        assert Address(CHECKSUMMED).short() == "0x0ee3...3914"


class TestLendingPath:
    """Test LendingPath invariants and accessors."""

    def test_direct_path(self):
        path = LendingPath(path=(addr(1), addr(2)), irs=(500,), source_available=980)
        assert path.is_direct
        assert path.source == addr(1)
        assert path.borrower == addr(2)
        assert path.relayers == ()
        assert path.final_ir == 500

    def test_rates_must_match_edges(self):
        """There is exactly one rate per edge."""
        with pytest.raises(InvalidArgumentError):
            LendingPath(path=(addr(1), addr(2), addr(3)), irs=(500,), source_available=1)

    def test_path_needs_two_addresses(self):
        with pytest.raises(InvalidArgumentError):
            LendingPath(path=(addr(1),), irs=(), source_available=1)

    def test_margins(self):
        path = LendingPath(path=(addr(1), addr(2), addr(3), addr(4)), irs=(400, 600, 900), source_available=1)
        assert path.margins() == [200, 300]
        assert path.relayers == (addr(2), addr(3))

    def test_borrow_args_drop_borrower(self):
        """The module's borrow call takes the lender chain and one rate per edge."""
        path = LendingPath(path=(addr(1), addr(2), addr(3)), irs=(400, 600), source_available=1)
        lenders, irs = path.borrow_args()
        assert lenders == [addr(1).to_checksum(), addr(2).to_checksum()]
        assert irs == [400, 600]

    def test_equality_ignores_discovery_time(self):
        first = LendingPath(path=(addr(1), addr(2)), irs=(5,), source_available=1, discovered_at=1.0)
        second = LendingPath(path=(addr(1), addr(2)), irs=(5,), source_available=1, discovered_at=2.0)
        assert first == second
        assert first.key == second.key

    def test_to_dict(self):
        data = LendingPath(path=(addr(1), addr(2)), irs=(10 ** 18,), source_available=980).to_dict()
        assert data["path"] == [addr(1), addr(2)]
        assert data["irs"] == [str(10 ** 18)]
        assert data["source_available"] == "980"


class TestEnrichedPath:
    """Test enrichment merging."""

    def _path(self):
        return LendingPath(path=(addr(1), addr(2)), irs=(5,), source_available=1)

    def test_unenriched_has_empty_profiles(self):
        enriched = EnrichedPath.unenriched(self._path())
        assert not enriched.enriched
        assert [p.address for p in enriched.profiles] == [addr(1), addr(2)]
        assert enriched.source_name is None

    def test_merge_keeps_known_values(self):
        """A later update never erases metadata already known."""
        path = self._path()
        current = EnrichedPath(path, (HopProfile(addr(1), "Alice", "a.png"), HopProfile(addr(2))), enriched=True)
        update = EnrichedPath(path, (HopProfile(addr(1), None, "b.png"), HopProfile(addr(2), "Bob")), enriched=True)
        merged = current.merge(update)
        assert merged.profiles[0] == HopProfile(addr(1), "Alice", "b.png")
        assert merged.profiles[1].name == "Bob"
        assert merged.source_name == "Alice"

    def test_merge_rejects_other_path(self):
        other = LendingPath(path=(addr(3), addr(2)), irs=(5,), source_available=1)
        with pytest.raises(InvalidArgumentError):
            EnrichedPath.unenriched(self._path()).merge(EnrichedPath.unenriched(other))

    def test_display_name_falls_back_to_address(self):
        assert HopProfile(addr(1)).display_name() == addr(1).short()


class TestFrontier:
    """Test frontier entries and relay extension."""

    def test_root_accepts_any_rate(self):
        root = FrontierEntry.root(addr(9))
        assert root.accepts_rate(10 ** 30)
        assert root.chain == (addr(9),)

    def test_extend_sets_ceiling(self):
        root = FrontierEntry.root(addr(9))
        constraint = RelayConstraint(addr(1), max_borrow_ir=1_000, min_ir_margin=100, borrow_cap=5)
        entry = root.extend(addr(1), 600, constraint)
        assert entry.chain == (addr(1), addr(9))
        assert entry.irs == (600,)
        assert entry.rate_ceiling == 500
        assert entry.accepts_rate(500)
        assert not entry.accepts_rate(501)

    def test_extend_without_borrow_cap(self):
        """A zero borrow cap disables relaying."""
        constraint = RelayConstraint(addr(1), max_borrow_ir=1_000, min_ir_margin=100, borrow_cap=0)
        assert FrontierEntry.root(addr(9)).extend(addr(1), 600, constraint) is None

    def test_extend_with_unreachable_margin(self):
        constraint = RelayConstraint(addr(1), max_borrow_ir=1_000, min_ir_margin=700, borrow_cap=5)
        assert FrontierEntry.root(addr(9)).extend(addr(1), 600, constraint) is None

    def test_path_from(self):
        entry = FrontierEntry(addr(1), (addr(1), addr(9)), (600,), 500)
        path = entry.path_from(addr(2), 400, 980)
        assert path.path == (addr(2), addr(1), addr(9))
        assert path.irs == (400, 600)

    def test_frontier_addresses_are_unique(self):
        frontier = SearchFrontier(depth=1, entries=[
            FrontierEntry(addr(1), (addr(1), addr(9))),
            FrontierEntry(addr(1), (addr(1), addr(8), addr(9))),
            FrontierEntry(addr(2), (addr(2), addr(9))),
        ])
        assert frontier.addresses == [addr(1), addr(2)]
        assert len(frontier) == 3
        assert not SearchFrontier(depth=0)


class TestLenderCapacity:
    """Test capacity snapshots."""

    def test_available_accrues_interest(self):
        capacity = LenderCapacity(addr(1), lending_cap=1_000, min_lend_ir=0, lent=100,
                                  owed_per_second=1, as_of=0, liquid_balance=5_000)
        assert capacity.current_lent(now=100) == 200
        assert capacity.available(now=100) == 784
