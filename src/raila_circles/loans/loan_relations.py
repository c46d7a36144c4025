"""Outstanding loans between a user and their trust circle."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..exceptions import LookupFailure, UpstreamUnavailableError
from ..pathfinding.lending_math import rate_to_apr, with_repay_buffer
from ..pathfinding.path_enricher import PathEnricher, ProfileCache
from ..pathfinding.path_models import Address, Profile
from ..protocols.chain_state_reader import Loan, RailaChainStateReader
from ..data_collector.circles_client import CirclesRpcClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanRelation:
    """Loans in both directions between the user and one circle member."""
    address: Address
    amount_owed: int           # They owe the user
    amount_borrowed: int       # The user owes them
    rate_owed: int = 0         # Per-second WAD rate on amount_owed
    rate_borrowed: int = 0     # Per-second WAD rate on amount_borrowed
    name: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def apr_owed(self) -> float:
        return rate_to_apr(self.rate_owed)

    @property
    def apr_borrowed(self) -> float:
        return rate_to_apr(self.rate_borrowed)

    def suggested_repay_amount(self) -> int:
        """Borrowed amount plus a buffer for interest accrued before repayment lands."""
        return with_repay_buffer(self.amount_borrowed)

    def repay_path(self, borrower: Address) -> List[str]:
        """Path argument for the module's repay(amount, path) call."""
        return [Address(borrower).to_checksum(), self.address.to_checksum()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "image_url": self.image_url,
            "amount_owed": str(self.amount_owed),
            "amount_borrowed": str(self.amount_borrowed),
            "apr_owed": round(self.apr_owed, 2),
            "apr_borrowed": round(self.apr_borrowed, 2),
        }


@dataclass(frozen=True)
class BalanceSummary:
    """Totals lent and borrowed by an address through the module."""
    address: Address
    lent: int
    borrowed: int

    @property
    def has_debts(self) -> bool:
        return self.lent > 0 or self.borrowed > 0


class LoanRelationReader:
    """Lists loans between a user and the members of their trust circle."""

    def __init__(
        self,
        circles_client: CirclesRpcClient,
        chain_reader: RailaChainStateReader
    ):
        self.circles_client = circles_client
        self.chain_reader = chain_reader

    async def get_balance_summary(self, address: Union[str, Address]) -> BalanceSummary:
        address = Address(address)
        balances = await self.chain_reader.batch_read_balances([address])
        value = balances.get(address)
        if value is None or isinstance(value, LookupFailure):
            raise UpstreamUnavailableError(f"Could not read balances for {address}", source="chain_state")
        return BalanceSummary(address=address, lent=value.lent, borrowed=value.borrowed)

    async def get_loan_relations(self, address: Union[str, Address]) -> List[LoanRelation]:
        """
        Get loans with every circle member that has the module enabled.

        Members without a loan in either direction are omitted.
        """
        address = Address(address)
        circle = sorted(await self.circles_client.get_mutual_trusts(address))
        if not circle:
            return []

        statuses = await self.chain_reader.batch_check_module_enabled(circle)
        enabled = [member for member in circle if statuses.get(member) is True]
        if not enabled:
            return []

        pairs = []
        for member in enabled:
            pairs.append((address, member))  # They owe the user
            pairs.append((member, address))  # The user owes them

        enricher = PathEnricher(self.circles_client, cache=ProfileCache())
        loans, profiles = await asyncio.gather(
            self.chain_reader.batch_read_loans(pairs),
            asyncio.gather(*(enricher.profile_for(member) for member in enabled))
        )

        relations = []
        for i, member in enumerate(enabled):
            owed = self._loan_or_none(loans[i * 2])
            borrowed = self._loan_or_none(loans[i * 2 + 1])
            amount_owed = owed.amount if owed else 0
            amount_borrowed = borrowed.amount if borrowed else 0
            if amount_owed == 0 and amount_borrowed == 0:
                continue

            profile: Optional[Profile] = profiles[i]
            relations.append(LoanRelation(
                address=member,
                amount_owed=amount_owed,
                amount_borrowed=amount_borrowed,
                rate_owed=owed.interest_rate_per_second if owed else 0,
                rate_borrowed=borrowed.interest_rate_per_second if borrowed else 0,
                name=profile.name if profile else None,
                image_url=profile.image_url if profile else None
            ))

        logger.info(f"Found {len(relations)} loan relations for {address.short()}")
        return relations

    @staticmethod
    def _loan_or_none(value: Union[Loan, LookupFailure]) -> Optional[Loan]:
        if isinstance(value, LookupFailure):
            return None
        return value
