"""Unit tests for LoanRelationReader."""
import pytest
from unittest.mock import AsyncMock, Mock

from raila_circles.exceptions import LookupFailure, UpstreamUnavailableError
from raila_circles.loans.loan_relations import LoanRelation, LoanRelationReader
from raila_circles.pathfinding.path_models import Profile
from raila_circles.protocols.chain_state_reader import Loan, ModuleBalances

from conftest import addr

ME = addr(0xA1)
FRIEND = addr(0x01)
IDLE_FRIEND = addr(0x02)
NO_MODULE = addr(0x03)


@pytest.fixture
def circles_client():
    client = Mock()
    client.get_mutual_trusts = AsyncMock(return_value={FRIEND, IDLE_FRIEND, NO_MODULE})
    client.get_profile = AsyncMock(side_effect=lambda a: Profile(name="Friend") if a == FRIEND else None)
    return client


@pytest.fixture
def chain_reader():
    reader = Mock()
    reader.batch_check_module_enabled = AsyncMock(
        return_value={FRIEND: True, IDLE_FRIEND: True, NO_MODULE: False}
    )

    async def read_loans(pairs):
        loans = {
            (ME, FRIEND): Loan(ME, FRIEND, 1_000, 10, 0),
            (FRIEND, ME): Loan(FRIEND, ME, 250, 20, 0),
        }
        return [loans.get(pair, Loan(pair[0], pair[1], 0, 0, 0)) for pair in pairs]

    reader.batch_read_loans = AsyncMock(side_effect=read_loans)
    reader.batch_read_balances = AsyncMock(return_value={ME: ModuleBalances(1_000, 1, 250, 2, 0)})
    return reader


class TestLoanRelationReader:
    """Test loan listing across the trust circle."""

    @pytest.mark.asyncio
    async def test_loan_relations(self, circles_client, chain_reader):
        relations = await LoanRelationReader(circles_client, chain_reader).get_loan_relations(ME)

        assert relations == [LoanRelation(
            address=FRIEND,
            amount_owed=1_000,
            amount_borrowed=250,
            rate_owed=10,
            rate_borrowed=20,
            name="Friend"
        )]
        pairs = chain_reader.batch_read_loans.call_args.args[0]
        assert (ME, NO_MODULE) not in pairs
        assert (ME, FRIEND) in pairs and (FRIEND, ME) in pairs

    @pytest.mark.asyncio
    async def test_empty_circle(self, circles_client, chain_reader):
        circles_client.get_mutual_trusts.return_value = set()

        assert await LoanRelationReader(circles_client, chain_reader).get_loan_relations(ME) == []
        chain_reader.batch_check_module_enabled.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_loan_read_counts_as_none(self, circles_client, chain_reader):
        chain_reader.batch_read_loans = AsyncMock(side_effect=lambda pairs: [LookupFailure(p[1]) for p in pairs])

        assert await LoanRelationReader(circles_client, chain_reader).get_loan_relations(ME) == []

    @pytest.mark.asyncio
    async def test_balance_summary(self, circles_client, chain_reader):
        summary = await LoanRelationReader(circles_client, chain_reader).get_balance_summary(ME)

        assert summary.lent == 1_000
        assert summary.borrowed == 250
        assert summary.has_debts

    @pytest.mark.asyncio
    async def test_balance_summary_failure(self, circles_client, chain_reader):
        chain_reader.batch_read_balances.return_value = {ME: LookupFailure(ME)}

        with pytest.raises(UpstreamUnavailableError):
            await LoanRelationReader(circles_client, chain_reader).get_balance_summary(ME)


class TestLoanRelation:
    """Test repayment helpers."""

    def test_repay_amount_includes_buffer(self):
        relation = LoanRelation(address=FRIEND, amount_owed=0, amount_borrowed=10_000)
        assert relation.suggested_repay_amount() == 10_100

    def test_repay_path(self):
        relation = LoanRelation(address=FRIEND, amount_owed=0, amount_borrowed=1)
        assert relation.repay_path(ME) == [ME.to_checksum(), FRIEND.to_checksum()]

    def test_to_dict(self):
        data = LoanRelation(address=FRIEND, amount_owed=5, amount_borrowed=0, name="Friend").to_dict()
        assert data["amount_owed"] == "5"
        assert data["name"] == "Friend"
