"""Circles RPC client for trust relations and profile metadata."""
import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import aiohttp

from ..exceptions import EnrichmentError, InvalidArgumentError, UpstreamUnavailableError
from ..pathfinding.path_models import Address, Profile
from ..pathfinding.sources import ProfileSource, TrustGraphSource

logger = logging.getLogger(__name__)


class TrustRelationType(str, Enum):
    """Aggregated relation between a subject avatar and an object avatar."""
    TRUSTS = "trusts"                    # Subject trusts object
    TRUSTED_BY = "trustedBy"             # Object trusts subject
    MUTUALLY_TRUSTS = "mutuallyTrusts"   # Both directions


@dataclass(frozen=True)
class TrustRelation:
    """One aggregated trust relation as reported by the Circles RPC."""
    subject: Address
    object: Address
    relation: TrustRelationType

    def counterpart(self, address: Address) -> Address:
        return self.object if self.subject == address else self.subject


class CirclesRpcError(Exception):
    """JSON-RPC level error returned by the Circles RPC."""
    pass


class CirclesRpcClient(TrustGraphSource, ProfileSource):
    """
    Async JSON-RPC client for the Circles indexer.

    Serves as the trust graph source for path discovery and as the profile
    source for enrichment.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize Circles RPC client.

        Args:
            rpc_url: Circles RPC endpoint
            timeout_seconds: Request timeout
            session: Optional externally managed HTTP session
        """
        self.rpc_url = rpc_url
        self.timeout_seconds = timeout_seconds
        self.session = session
        self._owns_session = session is None
        self._request_ids = itertools.count(1)

        self._stats = {
            "requests": 0,
            "rpc_errors": 0,
            "network_errors": 0,
        }

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if self.session:
            return

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "RailaCircles/0.1"
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        self.session = aiohttp.ClientSession(headers=headers, timeout=timeout)
        self._owns_session = True
        logger.info(f"Circles RPC session initialized for {self.rpc_url}")

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None
        logger.info("Circles RPC client closed")

    async def get_trust_relations(self, address: Address) -> List[TrustRelation]:
        """Get aggregated trust relations of `address`."""
        address = Address(address)
        result = await self._call(
            "circles_getAggregatedTrustRelations", [address.to_checksum()], source="trust_graph"
        )

        relations = []
        for raw in result or []:
            relation = self._parse_relation(raw)
            if relation is not None:
                relations.append(relation)
        return relations

    async def get_trusters_of(self, address: Address) -> Set[Address]:
        """Addresses that trust `address` directly or mutually."""
        address = Address(address)
        relations = await self.get_trust_relations(address)
        return {
            relation.counterpart(address)
            for relation in relations
            if relation.relation in (TrustRelationType.TRUSTED_BY, TrustRelationType.MUTUALLY_TRUSTS)
        }

    async def get_mutual_trusts(self, address: Address) -> Set[Address]:
        """Addresses in a mutual trust relation with `address`."""
        address = Address(address)
        relations = await self.get_trust_relations(address)
        return {
            relation.counterpart(address)
            for relation in relations
            if relation.relation == TrustRelationType.MUTUALLY_TRUSTS
        }

    async def get_profile(self, address: Address) -> Optional[Profile]:
        """
        Get display metadata for `address`.

        Raises:
            EnrichmentError: If the profile could not be fetched
        """
        address = Address(address)
        try:
            result = await self._call(
                "circles_getProfileByAddress", [address.to_checksum()], source="profiles"
            )
        except (UpstreamUnavailableError, CirclesRpcError) as e:
            raise EnrichmentError(f"Profile lookup failed for {address}: {e}") from e

        if not result:
            return None
        return Profile(
            name=result.get("name"),
            image_url=result.get("previewImageUrl") or result.get("imageUrl")
        )

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def _call(self, method: str, params: List[Any], source: str) -> Any:
        if not self.session:
            await self.initialize()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        self._stats["requests"] += 1

        try:
            async with self.session.post(self.rpc_url, json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    self._stats["network_errors"] += 1
                    raise UpstreamUnavailableError(
                        f"{method} failed: {response.status} - {error_text[:200]}",
                        source=source
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._stats["network_errors"] += 1
            raise UpstreamUnavailableError(f"Network error during {method}: {e}", source=source) from e

        if data.get("error"):
            self._stats["rpc_errors"] += 1
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise CirclesRpcError(f"{method}: {message}")

        return data.get("result")

    @staticmethod
    def _parse_relation(raw: Dict[str, Any]) -> Optional[TrustRelation]:
        try:
            return TrustRelation(
                subject=Address(raw["subjectAvatar"]),
                object=Address(raw["objectAvatar"]),
                relation=TrustRelationType(raw["relation"])
            )
        except (KeyError, ValueError, InvalidArgumentError) as e:
            logger.debug(f"Skipping unparseable trust relation {raw!r}: {e}")
            return None
