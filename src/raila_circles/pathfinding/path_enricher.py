"""Profile metadata enrichment for discovered lending paths."""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from .path_models import Address, EnrichedPath, HopProfile, LendingPath, Profile
from .sources import ProfileSource

logger = logging.getLogger(__name__)


class ProfileCache:
    """
    Profile lookups for the lifetime of one search.

    Concurrent requests for the same address share a single in-flight lookup,
    so every address is fetched at most once per cache.
    """

    def __init__(self):
        self._entries: Dict[Address, "asyncio.Future[Optional[Profile]]"] = {}
        self.lookups = 0

    async def get_or_fetch(
        self,
        address: Address,
        fetch: Callable[[Address], Awaitable[Optional[Profile]]]
    ) -> Optional[Profile]:
        entry = self._entries.get(address)
        if entry is None:
            entry = asyncio.ensure_future(fetch(address))
            self._entries[address] = entry
            self.lookups += 1
        # Shield so one cancelled waiter does not cancel the shared lookup
        return await asyncio.shield(entry)

    def get(self, address: Address) -> Optional[Profile]:
        """Cached profile if its lookup has completed."""
        entry = self._entries.get(address)
        if entry is None or not entry.done() or entry.cancelled():
            return None
        return entry.result()

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PathEnricher:
    """Attaches display names and avatars to each hop of a lending path."""

    def __init__(
        self,
        profile_source: ProfileSource,
        cache: ProfileCache = None,
        max_concurrent_lookups: int = 8
    ):
        """
        Initialize the path enricher.

        Args:
            profile_source: Source of profile metadata
            cache: Per-search profile cache (a fresh one is created if omitted)
            max_concurrent_lookups: Limit on simultaneous profile requests
        """
        self.profile_source = profile_source
        self.cache = cache if cache is not None else ProfileCache()
        self._lookup_semaphore = asyncio.Semaphore(max_concurrent_lookups)
        self.failed_lookups = 0

    async def enrich(self, path: LendingPath) -> EnrichedPath:
        """
        Fetch profile metadata for every hop of `path`.

        A failed lookup leaves that hop without metadata; it never fails the path.
        """
        profiles = await asyncio.gather(*(self.profile_for(address) for address in path.path))

        return EnrichedPath(
            path=path,
            profiles=tuple(
                HopProfile(
                    address=address,
                    name=profile.name if profile else None,
                    image_url=profile.image_url if profile else None
                )
                for address, profile in zip(path.path, profiles)
            ),
            enriched=True
        )

    async def profile_for(self, address: Address) -> Optional[Profile]:
        """Cached profile lookup; None when absent or the lookup failed."""
        return await self.cache.get_or_fetch(address, self._fetch_profile)

    async def _fetch_profile(self, address: Address) -> Optional[Profile]:
        async with self._lookup_semaphore:
            try:
                return await self.profile_source.get_profile(address)
            except Exception as e:
                self.failed_lookups += 1
                logger.warning(f"Failed to fetch profile for {address.short()}: {e}")
                return None
