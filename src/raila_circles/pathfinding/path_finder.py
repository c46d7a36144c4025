"""Depth-bounded breadth-first discovery of lending paths over the trust graph."""
import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, TypeVar, Union

from ..exceptions import (
    InvalidArgumentError,
    LookupFailure,
    PartialLookupFailure,
    UpstreamUnavailableError,
)
from .path_models import (
    Address,
    FrontierEntry,
    LenderCapacity,
    LendingPath,
    PathKey,
    RelayConstraint,
    SearchFrontier,
)
from .sources import ChainStateReader, TrustGraphSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

PathCallback = Callable[[LendingPath], Optional[Awaitable[None]]]
DepthCallback = Callable[[int], Optional[Awaitable[None]]]


@dataclass
class PathFinderConfig:
    """Configuration for lending path discovery."""
    max_depth: int = 3                      # Maximum hops (edges) per path
    read_relay_constraints: bool = True     # Disable to search direct lenders only
    clock: Callable[[], float] = time.time  # Source of "now" for accrual


@dataclass
class SearchStats:
    """Counters collected during one search invocation."""
    depths_evaluated: int = 0
    addresses_discovered: int = 0
    addresses_qualified: int = 0
    paths_emitted: int = 0
    duplicate_paths: int = 0
    relays_retained: int = 0
    cancelled: bool = False
    partial_failures: List[PartialLookupFailure] = field(default_factory=list)


class CancellationToken:
    """Liveness flag checked before every emission and every new depth."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


async def _notify(callback: Optional[Callable[[Any], Any]], value: Any) -> None:
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class LendingPathFinder:
    """
    Finds chains of trust through which a borrower can draw a loan.

    The search expands outward from the borrower one depth at a time. Each
    depth collects the trusters of the previous depth's relayers, prunes
    addresses without the lending module, batch-reads their capacity and relay
    limits, emits every path that terminates in a lender with capacity, and
    keeps qualifying relayers as the next depth's frontier.
    """

    def __init__(
        self,
        trust_source: TrustGraphSource,
        chain_reader: ChainStateReader,
        config: PathFinderConfig = None
    ):
        """
        Initialize the path finder.

        Args:
            trust_source: Source of trust relations
            chain_reader: Batched reader of lending module state
            config: Search configuration parameters
        """
        self.trust_source = trust_source
        self.chain_reader = chain_reader
        self.config = config or PathFinderConfig()

    async def find_lending_paths(
        self,
        borrower: Union[str, Address],
        max_depth: Optional[int] = None,
        on_path: Optional[PathCallback] = None,
        on_depth: Optional[DepthCallback] = None,
        token: Optional[CancellationToken] = None,
        stats: Optional[SearchStats] = None
    ) -> None:
        """
        Stream lending paths for `borrower` through the callbacks.

        Args:
            borrower: Address that wants to borrow
            max_depth: Maximum hops per path (defaults to config.max_depth)
            on_path: Called once per distinct path, in discovery order
            on_depth: Called when evaluation of each depth begins, starting at 0
            token: Cancellation token; a cancelled search stops emitting
            stats: Optional counters filled in during the search

        Raises:
            InvalidArgumentError: Bad borrower address or depth bound
            UpstreamUnavailableError: A collaborator batch was wholly unreachable
        """
        borrower_address = Address(borrower)
        depth_bound = self.config.max_depth if max_depth is None else max_depth
        if isinstance(depth_bound, bool) or not isinstance(depth_bound, int) or depth_bound < 1:
            raise InvalidArgumentError(f"max_depth must be an integer >= 1, got {depth_bound!r}")

        run = _SearchRun(
            finder=self,
            borrower=borrower_address,
            max_depth=depth_bound,
            on_path=on_path,
            on_depth=on_depth,
            token=token or CancellationToken(),
            stats=stats if stats is not None else SearchStats()
        )
        await run.execute()


class _SearchRun:
    """State owned by a single search invocation."""

    def __init__(
        self,
        finder: LendingPathFinder,
        borrower: Address,
        max_depth: int,
        on_path: Optional[PathCallback],
        on_depth: Optional[DepthCallback],
        token: CancellationToken,
        stats: SearchStats
    ):
        self.trust_source = finder.trust_source
        self.chain_reader = finder.chain_reader
        self.config = finder.config
        self.borrower = borrower
        self.max_depth = max_depth
        self.on_path = on_path
        self.on_depth = on_depth
        self.token = token
        self.stats = stats

        self._visited: Set[Address] = {borrower}
        self._emitted: Set[PathKey] = set()

    @property
    def _live(self) -> bool:
        if self.token.is_cancelled:
            self.stats.cancelled = True
            return False
        return True

    async def execute(self) -> None:
        search_start_time = time.time()
        logger.info(f"Starting lending path search for {self.borrower.short()}, max depth {self.max_depth}")

        frontier = SearchFrontier(depth=0, entries=[FrontierEntry.root(self.borrower)])

        for depth in range(self.max_depth):
            if not self._live:
                logger.debug(f"Search for {self.borrower.short()} abandoned before depth {depth}")
                return

            await _notify(self.on_depth, depth)
            self.stats.depths_evaluated += 1

            frontier = await self._evaluate_depth(depth, frontier)
            if frontier is None:
                return
            if not frontier:
                logger.debug(f"No relayers to expand after depth {depth}, terminating")
                break

        elapsed = time.time() - search_start_time
        logger.info(
            f"Lending path search for {self.borrower.short()} completed: "
            f"{self.stats.paths_emitted} paths in {elapsed:.2f}s"
        )

    async def _evaluate_depth(self, depth: int, frontier: SearchFrontier) -> Optional[SearchFrontier]:
        """
        Evaluate one depth level and build the next frontier.

        Returns None when the search was cancelled mid-level.
        """
        next_frontier = SearchFrontier(depth=depth + 1)

        candidates = await self._collect_candidates(depth, frontier)
        if not self._live:
            return None
        if not candidates:
            return next_frontier

        # Shallowest depth wins: nothing found here is re-explored deeper
        self._visited.update(candidates)
        self.stats.addresses_discovered += len(candidates)

        enabled = await self._qualify(depth, list(candidates))
        if not self._live:
            return None
        if not enabled:
            logger.debug(f"Depth {depth}: none of {len(candidates)} candidates has the module enabled")
            return next_frontier
        self.stats.addresses_qualified += len(enabled)

        expand_further = depth < self.max_depth - 1 and self.config.read_relay_constraints
        capacities, constraints = await self._read_state(depth, enabled, expand_further)
        if not self._live:
            return None

        now = int(self.config.clock())
        emitted_before = self.stats.paths_emitted

        for address in enabled:
            capacity = capacities.get(address)
            if capacity is None or capacity.lending_cap <= 0:
                logger.debug(f"Depth {depth}: {address.short()} has no lending capacity configured")
                continue

            rate = capacity.min_lend_ir
            available = capacity.available(now)
            constraint = constraints.get(address)

            for downstream in candidates[address]:
                if not downstream.accepts_rate(rate):
                    logger.debug(
                        f"Depth {depth}: {address.short()} rate {rate} exceeds "
                        f"ceiling {downstream.rate_ceiling} of {downstream.address.short()}"
                    )
                    continue

                if available > 0:
                    if not await self._emit(downstream.path_from(address, rate, available)):
                        return None

                if expand_further and constraint is not None:
                    entry = downstream.extend(address, rate, constraint)
                    if entry is not None:
                        next_frontier.entries.append(entry)

        self.stats.relays_retained += len(next_frontier)
        logger.info(
            f"Depth {depth}: {len(candidates)} candidates, {len(enabled)} enabled, "
            f"{self.stats.paths_emitted - emitted_before} paths, {len(next_frontier)} relay chains"
        )
        return next_frontier

    async def _collect_candidates(
        self,
        depth: int,
        frontier: SearchFrontier
    ) -> Dict[Address, List[FrontierEntry]]:
        """Map each newly reachable address to the downstream chains it could lend into."""
        addresses = frontier.addresses
        results = await asyncio.gather(
            *(self.trust_source.get_trusters_of(address) for address in addresses),
            return_exceptions=True
        )

        trusters_by_address: Dict[Address, List[Address]] = {}
        failed: List[Address] = []
        for address, result in zip(addresses, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Trust lookup failed for {address.short()}: {result}")
                failed.append(address)
                continue
            trusters_by_address[address] = self._normalize_trusters(result)

        if failed:
            if len(failed) == len(addresses):
                logger.error(f"Trust graph unreachable at depth {depth}")
                raise UpstreamUnavailableError(
                    f"Trust lookups failed for all {len(addresses)} addresses at depth {depth}",
                    source="trust_graph"
                )
            self._record_partial_failure("trust_graph", depth, failed)

        candidates: Dict[Address, List[FrontierEntry]] = {}
        for entry in frontier.entries:
            for truster in trusters_by_address.get(entry.address, []):
                if truster in self._visited or entry.contains(truster):
                    continue
                candidates.setdefault(truster, []).append(entry)

        return candidates

    def _normalize_trusters(self, trusters: Iterable[Any]) -> List[Address]:
        normalized = set()
        for truster in trusters:
            try:
                normalized.add(Address(truster))
            except InvalidArgumentError:
                logger.debug(f"Ignoring malformed truster address {truster!r}")
        return sorted(normalized)

    async def _qualify(self, depth: int, addresses: List[Address]) -> List[Address]:
        """Keep addresses that have the lending module enabled."""
        statuses = await self._guarded(
            "chain_state", self.chain_reader.batch_check_module_enabled(addresses)
        )
        results = self._unwrap("module_enabled", depth, addresses, statuses)
        return [address for address in addresses if results.get(address) is True]

    async def _read_state(
        self,
        depth: int,
        addresses: List[Address],
        include_relays: bool
    ) -> Tuple[Dict[Address, LenderCapacity], Dict[Address, RelayConstraint]]:
        """Read capacity and, for non-terminal depths, relay limits in one batch."""
        capacity_batch, relay_batch = await self._guarded(
            "chain_state", self.chain_reader.batch_read_lender_state(addresses, include_relays)
        )

        capacities = self._unwrap("capacity", depth, addresses, capacity_batch)
        relays = self._unwrap("relay_constraint", depth, addresses, relay_batch) if include_relays else {}
        return capacities, relays

    async def _guarded(self, source: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            logger.error(f"{source} batch read failed: {e}")
            raise UpstreamUnavailableError(f"Batch read failed: {e}", source=source) from e

    def _unwrap(
        self,
        stage: str,
        depth: int,
        addresses: List[Address],
        batch: Dict[Address, Union[T, LookupFailure]]
    ) -> Dict[Address, T]:
        """Split a batch into successful values, recording failed entries."""
        values: Dict[Address, T] = {}
        failed: List[Address] = []
        for address in addresses:
            value = batch.get(address)
            if value is None or isinstance(value, LookupFailure):
                failed.append(address)
            else:
                values[address] = value

        if failed:
            self._record_partial_failure(stage, depth, failed)
        return values

    def _record_partial_failure(self, stage: str, depth: int, addresses: List[Address]) -> None:
        failure = PartialLookupFailure(stage=stage, depth=depth, addresses=list(addresses))
        self.stats.partial_failures.append(failure)
        logger.warning(
            f"Depth {depth}: {stage} lookup failed for {failure.count} addresses, excluding them"
        )

    async def _emit(self, path: LendingPath) -> bool:
        """Deliver a path unless it was already emitted; False if the search was abandoned."""
        if not self._live:
            return False
        if path.key in self._emitted:
            self.stats.duplicate_paths += 1
            return True

        self._emitted.add(path.key)
        self.stats.paths_emitted += 1
        logger.debug(f"Found lending path {' -> '.join(a.short() for a in path.path)}")
        await _notify(self.on_path, path)
        return True
