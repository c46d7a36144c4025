"""Streaming orchestration: dedup, background enrichment and search supersession."""
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set, Union

from ..exceptions import RailaError
from .path_enricher import PathEnricher, ProfileCache
from .path_finder import CancellationToken, LendingPathFinder, SearchStats
from .path_models import Address, EnrichedPath, LendingPath, PathKey
from .sources import ProfileSource

logger = logging.getLogger(__name__)


class SearchState(str, Enum):
    """Lifecycle of one streamed search."""
    PENDING = "pending"        # Created, not yet running
    SEARCHING = "searching"    # Depths are being evaluated
    COMPLETE = "complete"      # Depth bound exhausted or nothing left to expand
    FAILED = "failed"          # A fatal error was surfaced
    CANCELLED = "cancelled"    # Superseded or abandoned


@dataclass
class StreamListener:
    """Consumer callbacks; every one is optional."""
    on_path: Optional[Callable[[EnrichedPath], None]] = None
    on_path_updated: Optional[Callable[[EnrichedPath], None]] = None
    on_depth: Optional[Callable[[int], None]] = None
    on_complete: Optional[Callable[[int], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None


class SearchSession:
    """Results and state owned by one search invocation."""

    def __init__(self, borrower: Address, enricher: PathEnricher, max_depth: int):
        self.borrower = borrower
        self.enricher = enricher
        self.max_depth = max_depth
        self.token = CancellationToken()
        self.stats = SearchStats()
        self.state = SearchState.PENDING
        self.current_depth: Optional[int] = None
        self.error: Optional[Exception] = None
        self.duplicates_dropped = 0

        self._results: "OrderedDict[PathKey, EnrichedPath]" = OrderedDict()
        self._enrichment_tasks: Set[asyncio.Task] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def paths(self) -> List[EnrichedPath]:
        """Latest known version of every path, in discovery order."""
        return list(self._results.values())

    def get(self, key: PathKey) -> Optional[EnrichedPath]:
        return self._results.get(key)

    @property
    def is_loading(self) -> bool:
        return self.state in (SearchState.PENDING, SearchState.SEARCHING)

    @property
    def no_paths_found(self) -> bool:
        """Search finished normally without discovering anything."""
        return self.state == SearchState.COMPLETE and not self._results

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    def cancel(self) -> None:
        if not self.token.is_cancelled:
            self.token.cancel()
            if self.is_loading:
                self.state = SearchState.CANCELLED

    async def wait(self) -> None:
        """Wait for the search itself (not enrichment) to finish."""
        if self._task is not None:
            await self._task

    async def drain(self) -> None:
        """Wait for the search and every enrichment it started."""
        await self.wait()
        while self._enrichment_tasks:
            await asyncio.gather(*list(self._enrichment_tasks), return_exceptions=True)


class LendingPathStream:
    """
    Streams lending paths for one consumer.

    Every path is delivered unenriched as soon as it is found and updated in
    place once its profile metadata arrives. Starting a new search abandons the
    previous one: its remaining callbacks are discarded.
    """

    def __init__(
        self,
        path_finder: LendingPathFinder,
        profile_source: ProfileSource,
        listener: StreamListener = None,
        max_depth: Optional[int] = None,
        max_concurrent_lookups: int = 8
    ):
        """
        Initialize the stream.

        Args:
            path_finder: Finder used for every search
            profile_source: Source for background enrichment
            listener: Consumer callbacks
            max_depth: Depth bound (defaults to the finder's configuration)
            max_concurrent_lookups: Profile lookup limit per search
        """
        self.path_finder = path_finder
        self.profile_source = profile_source
        self.listener = listener or StreamListener()
        self.max_depth = max_depth if max_depth is not None else path_finder.config.max_depth
        self.max_concurrent_lookups = max_concurrent_lookups
        self._session: Optional[SearchSession] = None

    @property
    def session(self) -> Optional[SearchSession]:
        return self._session

    @property
    def paths(self) -> List[EnrichedPath]:
        return self._session.paths if self._session else []

    def start(self, borrower: Union[str, Address]) -> SearchSession:
        """
        Start searching for `borrower`, superseding any search in progress.

        Raises:
            InvalidArgumentError: If `borrower` is not a valid address
        """
        borrower_address = Address(borrower)
        self.cancel()

        enricher = PathEnricher(
            self.profile_source,
            cache=ProfileCache(),
            max_concurrent_lookups=self.max_concurrent_lookups
        )
        session = SearchSession(borrower_address, enricher, self.max_depth)
        self._session = session
        session._task = asyncio.create_task(self._run(session))
        return session

    async def search(self, borrower: Union[str, Address]) -> SearchSession:
        """Run a search to completion, including background enrichment."""
        session = self.start(borrower)
        await session.drain()
        return session

    def cancel(self) -> None:
        """Abandon the current search, if any."""
        if self._session is not None:
            logger.debug(f"Abandoning search for {self._session.borrower.short()}")
            self._session.cancel()

    def _is_live(self, session: SearchSession) -> bool:
        return self._session is session and not session.token.is_cancelled

    async def _run(self, session: SearchSession) -> None:
        session.state = SearchState.SEARCHING
        try:
            await self.path_finder.find_lending_paths(
                session.borrower,
                session.max_depth,
                on_path=lambda path: self._handle_path(session, path),
                on_depth=lambda depth: self._handle_depth(session, depth),
                token=session.token,
                stats=session.stats
            )
        except Exception as e:
            if not self._is_live(session):
                return
            session.state = SearchState.FAILED
            session.error = e
            if isinstance(e, RailaError):
                logger.error(f"Lending path search for {session.borrower.short()} failed: {e}")
            else:
                logger.exception(f"Unexpected error in lending path search for {session.borrower.short()}")
            if self.listener.on_error:
                self.listener.on_error(e)
            return
        finally:
            session.current_depth = None

        if not self._is_live(session):
            session.state = SearchState.CANCELLED
            return

        session.state = SearchState.COMPLETE
        if session.no_paths_found:
            logger.info(f"No lending paths found for {session.borrower.short()}")
        if self.listener.on_complete:
            self.listener.on_complete(len(session.paths))

    def _handle_depth(self, session: SearchSession, depth: int) -> None:
        if not self._is_live(session):
            return
        session.current_depth = depth
        if self.listener.on_depth:
            self.listener.on_depth(depth)

    def _handle_path(self, session: SearchSession, path: LendingPath) -> None:
        if not self._is_live(session):
            return

        key = path.key
        if key in session._results:
            session.duplicates_dropped += 1
            logger.debug(f"Skipping duplicate path: {'-'.join(key)}")
            return

        unenriched = EnrichedPath.unenriched(path)
        session._results[key] = unenriched
        if self.listener.on_path:
            self.listener.on_path(unenriched)

        # Enrich in the background; discovery never waits on it
        task = asyncio.create_task(self._enrich(session, path))
        session._enrichment_tasks.add(task)
        task.add_done_callback(session._enrichment_tasks.discard)

    async def _enrich(self, session: SearchSession, path: LendingPath) -> None:
        enriched = await session.enricher.enrich(path)
        if not self._is_live(session):
            return

        current = session._results.get(path.key)
        merged = current.merge(enriched) if current is not None else enriched
        session._results[path.key] = merged
        if self.listener.on_path_updated:
            self.listener.on_path_updated(merged)
