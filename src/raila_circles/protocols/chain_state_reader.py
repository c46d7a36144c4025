"""Batched reads of Raila lending module state via multicall."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from ..blockchain_connector.async_multicall import (
    AsyncMulticallProvider,
    MulticallError,
    MulticallRequest,
    MulticallResult,
)
from ..exceptions import LookupFailure, UpstreamUnavailableError
from ..pathfinding.path_models import Address, LenderCapacity, RelayConstraint
from ..pathfinding.sources import ChainStateReader
from .contracts import (
    ERC20_BALANCE_OF,
    MODULE_BALANCES,
    MODULE_BALANCES_OUTPUT,
    MODULE_LIMITS,
    MODULE_LIMITS_OUTPUT,
    MODULE_LOANS,
    MODULE_LOANS_OUTPUT,
    SAFE_IS_MODULE_ENABLED,
    decode_bool,
    decode_output,
    decode_uint,
    encode_call,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleLimits:
    """Decoded `limits(address)` tuple."""
    lending_cap: int
    min_lend_ir: int
    borrow_cap: int
    max_borrow_ir: int
    min_ir_margin: int


@dataclass(frozen=True)
class ModuleBalances:
    """Decoded `balances(address)` tuple."""
    lent: int
    owed_per_second: int
    borrowed: int
    owes_per_second: int
    timestamp: int


@dataclass(frozen=True)
class Loan:
    """Decoded `loans(lender, borrower)` tuple."""
    lender: Address
    borrower: Address
    amount: int
    interest_rate_per_second: int
    timestamp: int


def _decode_limits(data: bytes) -> ModuleLimits:
    return ModuleLimits(*decode_output(MODULE_LIMITS_OUTPUT, data))


def _decode_balances(data: bytes) -> ModuleBalances:
    return ModuleBalances(*decode_output(MODULE_BALANCES_OUTPUT, data))


def _decode_loan(data: bytes) -> Tuple[int, int, int]:
    return decode_output(MODULE_LOANS_OUTPUT, data)


class RailaChainStateReader(ChainStateReader):
    """
    Reads lending module state in batches and maps positional call results
    into typed records, so callers never handle raw tuples.
    """

    def __init__(
        self,
        multicall: AsyncMulticallProvider,
        module_address: str,
        token_address: str
    ):
        """
        Initialize the chain state reader.

        Args:
            multicall: Multicall provider used for every batch
            module_address: Raila lending module address
            token_address: ERC20 token lent through the module
        """
        self.multicall = multicall
        self.module_address = Address(module_address)
        self.token_address = Address(token_address)

    async def batch_check_module_enabled(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[bool, LookupFailure]]:
        """Check whether each Safe has the lending module enabled."""
        addresses = list(addresses)
        calls = [
            MulticallRequest(
                target=address.to_checksum(),
                call_data=encode_call(
                    SAFE_IS_MODULE_ENABLED, ["address"], [self.module_address.to_checksum()]
                ),
                function_name="isModuleEnabled",
                decode_function=decode_bool
            )
            for address in addresses
        ]
        results = await self._execute(calls)
        return {
            address: result.result if result.success else self._failure(address, result)
            for address, result in zip(addresses, results)
        }

    async def batch_read_limits(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[ModuleLimits, LookupFailure]]:
        addresses = list(addresses)
        results = await self._execute([self._limits_call(address) for address in addresses])
        return {
            address: result.result if result.success else self._failure(address, result)
            for address, result in zip(addresses, results)
        }

    async def batch_read_capacity(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[LenderCapacity, LookupFailure]]:
        capacities, _ = await self.batch_read_lender_state(addresses, include_relay=False)
        return capacities

    async def batch_read_relay_constraint(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[RelayConstraint, LookupFailure]]:
        """Read the relaying limits of each address."""
        limits = await self.batch_read_limits(addresses)
        return {
            address: value if isinstance(value, LookupFailure) else self._relay_constraint(address, value)
            for address, value in limits.items()
        }

    async def batch_read_lender_state(
        self,
        addresses: Iterable[Address],
        include_relay: bool = True
    ) -> Tuple[
        Dict[Address, Union[LenderCapacity, LookupFailure]],
        Dict[Address, Union[RelayConstraint, LookupFailure]]
    ]:
        """
        Read limits, module balances and token balance for each address in one batch.

        Capacity and relay limits both come from the same `limits` result, so
        relay limits stay available when only a balance read failed.
        """
        addresses = list(addresses)
        calls: List[MulticallRequest] = []
        for address in addresses:
            calls.extend([
                self._limits_call(address),
                self._balances_call(address),
                MulticallRequest(
                    target=self.token_address.to_checksum(),
                    call_data=encode_call(ERC20_BALANCE_OF, ["address"], [address.to_checksum()]),
                    function_name="balanceOf",
                    decode_function=decode_uint
                ),
            ])

        results = await self._execute(calls)

        capacities: Dict[Address, Union[LenderCapacity, LookupFailure]] = {}
        relays: Dict[Address, Union[RelayConstraint, LookupFailure]] = {}
        for i, address in enumerate(addresses):
            limits, balances, token_balance = results[i * 3:i * 3 + 3]

            if include_relay:
                relays[address] = (
                    self._relay_constraint(address, limits.result)
                    if limits.success else self._failure(address, limits)
                )

            failed = next((r for r in (limits, balances, token_balance) if not r.success), None)
            if failed is not None:
                capacities[address] = self._failure(address, failed)
                continue

            capacities[address] = LenderCapacity(
                address=address,
                lending_cap=limits.result.lending_cap,
                min_lend_ir=limits.result.min_lend_ir,
                lent=balances.result.lent,
                owed_per_second=balances.result.owed_per_second,
                as_of=balances.result.timestamp,
                liquid_balance=token_balance.result,
                borrowed=balances.result.borrowed,
                owes_per_second=balances.result.owes_per_second
            )
        return capacities, relays

    async def batch_read_balances(
        self,
        addresses: Iterable[Address]
    ) -> Dict[Address, Union[ModuleBalances, LookupFailure]]:
        addresses = list(addresses)
        results = await self._execute([self._balances_call(address) for address in addresses])
        return {
            address: result.result if result.success else self._failure(address, result)
            for address, result in zip(addresses, results)
        }

    async def batch_read_loans(
        self,
        pairs: Sequence[Tuple[Address, Address]]
    ) -> List[Union[Loan, LookupFailure]]:
        """Read loans for (lender, borrower) pairs, in pair order."""
        calls = [
            MulticallRequest(
                target=self.module_address.to_checksum(),
                call_data=encode_call(
                    MODULE_LOANS, ["address", "address"], [lender.to_checksum(), borrower.to_checksum()]
                ),
                function_name="loans",
                decode_function=_decode_loan
            )
            for lender, borrower in pairs
        ]
        results = await self._execute(calls)

        loans: List[Union[Loan, LookupFailure]] = []
        for (lender, borrower), result in zip(pairs, results):
            if not result.success:
                loans.append(self._failure(borrower, result))
                continue
            amount, rate, timestamp = result.result
            loans.append(Loan(lender, borrower, amount, rate, timestamp))
        return loans

    @staticmethod
    def _relay_constraint(address: Address, limits: ModuleLimits) -> RelayConstraint:
        return RelayConstraint(
            address=address,
            max_borrow_ir=limits.max_borrow_ir,
            min_ir_margin=limits.min_ir_margin,
            borrow_cap=limits.borrow_cap
        )

    def _limits_call(self, address: Address) -> MulticallRequest:
        return MulticallRequest(
            target=self.module_address.to_checksum(),
            call_data=encode_call(MODULE_LIMITS, ["address"], [address.to_checksum()]),
            function_name="limits",
            decode_function=_decode_limits
        )

    def _balances_call(self, address: Address) -> MulticallRequest:
        return MulticallRequest(
            target=self.module_address.to_checksum(),
            call_data=encode_call(MODULE_BALANCES, ["address"], [address.to_checksum()]),
            function_name="balances",
            decode_function=_decode_balances
        )

    async def _execute(self, calls: List[MulticallRequest]) -> List[MulticallResult]:
        try:
            return await self.multicall.execute_calls(calls)
        except MulticallError as e:
            raise UpstreamUnavailableError(str(e), source="chain_state") from e

    @staticmethod
    def _failure(address: Address, result: MulticallResult) -> LookupFailure:
        logger.debug(f"{result.function_name} failed for {address.short()}: {result.error}")
        return LookupFailure(address=address, reason=result.error or "call failed")
