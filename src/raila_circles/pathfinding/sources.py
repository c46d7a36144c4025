"""Collaborator interfaces consumed by the path finder and enricher."""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set, Tuple, Union

from ..exceptions import LookupFailure
from .path_models import Address, LenderCapacity, Profile, RelayConstraint


class TrustGraphSource(ABC):
    """Supplies the addresses that extend trust to a given address."""

    @abstractmethod
    async def get_trusters_of(self, address: Address) -> Set[Address]:
        """
        Get addresses with a direct or mutual trust relation pointing at `address`.

        An address with no trusters yields an empty set, not an error.
        """
        pass


class ChainStateReader(ABC):
    """Batched reads of lending module state.

    Each entry of a returned map may independently be a LookupFailure. A
    batch that cannot be read at all raises UpstreamUnavailableError.
    """

    @abstractmethod
    async def batch_check_module_enabled(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[bool, LookupFailure]]:
        pass

    @abstractmethod
    async def batch_read_capacity(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[LenderCapacity, LookupFailure]]:
        pass

    @abstractmethod
    async def batch_read_relay_constraint(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[RelayConstraint, LookupFailure]]:
        pass

    async def batch_read_lender_state(
        self,
        addresses: Iterable[Address],
        include_relay: bool = True
    ) -> Tuple[
        Dict[Address, Union[LenderCapacity, LookupFailure]],
        Dict[Address, Union[RelayConstraint, LookupFailure]]
    ]:
        """
        Capacity and, optionally, relay limits for the same addresses.

        Readers that can serve both from one batch override this.
        """
        addresses = list(addresses)
        if not include_relay:
            return await self.batch_read_capacity(addresses), {}
        capacities, relays = await asyncio.gather(
            self.batch_read_capacity(addresses),
            self.batch_read_relay_constraint(addresses)
        )
        return capacities, relays


class ProfileSource(ABC):
    """Supplies display metadata for addresses."""

    @abstractmethod
    async def get_profile(self, address: Address) -> Optional[Profile]:
        pass
