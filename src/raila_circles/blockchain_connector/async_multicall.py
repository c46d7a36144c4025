"""Async multicall batching for efficient chain state reads."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from ..protocols.contracts import MULTICALL3_ABI

logger = logging.getLogger(__name__)


class MulticallError(Exception):
    """Raised when a batch could not be executed at all."""
    pass


@dataclass
class MulticallRequest:
    """Single multicall request specification."""
    target: str  # Contract address
    call_data: bytes  # Encoded function call data
    function_name: str  # Human-readable function name
    decode_function: Optional[Callable[[bytes], Any]] = None  # Optional result decoder


@dataclass
class MulticallResult:
    """Result of a multicall request."""
    success: bool
    result: Any
    call_index: int
    function_name: str
    target: str
    error: Optional[str] = None
    execution_time: Optional[float] = None


class AsyncMulticallProvider:
    """
    Async multicall provider backed by Multicall3 `aggregate3`.

    Calls are chunked into batches of `max_batch_size` and executed with
    `allowFailure` so a reverting call fails only its own entry. Without a
    multicall address, or when the aggregate call itself fails, calls are
    executed individually with asyncio.gather.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        multicall_address: Optional[str] = None,
        max_batch_size: int = 100
    ):
        """
        Initialize the async multicall provider.

        Args:
            w3: AsyncWeb3 instance
            multicall_address: Address of the Multicall3 contract
            max_batch_size: Maximum number of calls per batch
        """
        self.w3 = w3
        self.multicall_address = multicall_address
        self.max_batch_size = max_batch_size

        self._multicall_contract = None
        if multicall_address:
            self._multicall_contract = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(multicall_address),
                abi=MULTICALL3_ABI
            )

        logger.info(
            f"Initialized AsyncMulticallProvider - "
            f"multicall: {multicall_address or 'disabled'}, "
            f"max_batch_size: {max_batch_size}"
        )

    async def execute_calls(self, calls: List[MulticallRequest]) -> List[MulticallResult]:
        """
        Execute multiple calls efficiently.

        Args:
            calls: List of multicall requests

        Returns:
            One result per request, in request order

        Raises:
            MulticallError: If no call in the batch could be executed
        """
        if not calls:
            return []

        start_time = time.time()

        if self._multicall_contract is not None:
            try:
                results = await self._execute_with_multicall(calls)
            except Exception as e:
                logger.warning(f"Multicall aggregate failed, falling back to individual calls: {e}")
                results = await self._execute_individual_calls(calls)
        else:
            results = await self._execute_individual_calls(calls)

        execution_time = time.time() - start_time
        for result in results:
            result.execution_time = execution_time / len(calls)

        if all(result.error and result.error.startswith("transport:") for result in results):
            raise MulticallError(f"All {len(calls)} calls failed: {results[0].error}")

        successful = sum(1 for r in results if r.success)
        logger.debug(
            f"Executed {len(calls)} calls in {execution_time:.4f}s: "
            f"{successful} successful, {len(calls) - successful} failed"
        )
        return results

    async def _execute_with_multicall(self, calls: List[MulticallRequest]) -> List[MulticallResult]:
        """Execute calls through Multicall3 aggregate3 in chunks."""
        chunks = [
            calls[batch_start:batch_start + self.max_batch_size]
            for batch_start in range(0, len(calls), self.max_batch_size)
        ]

        chunk_results = await asyncio.gather(*(
            self._multicall_contract.functions.aggregate3([
                (AsyncWeb3.to_checksum_address(call.target), True, call.call_data)
                for call in chunk
            ]).call()
            for chunk in chunks
        ))

        results = []
        for chunk_index, (chunk, raw_results) in enumerate(zip(chunks, chunk_results)):
            offset = chunk_index * self.max_batch_size
            for i, (call, (success, return_data)) in enumerate(zip(chunk, raw_results)):
                if success:
                    results.append(self._decode(call, offset + i, return_data))
                else:
                    results.append(MulticallResult(
                        success=False,
                        result=None,
                        call_index=offset + i,
                        function_name=call.function_name,
                        target=call.target,
                        error="call reverted"
                    ))
        return results

    async def _execute_individual_calls(self, calls: List[MulticallRequest]) -> List[MulticallResult]:
        """Fallback: Execute calls individually with asyncio.gather."""
        async def execute_single_call(call: MulticallRequest, index: int) -> MulticallResult:
            try:
                return_data = await self.w3.eth.call({
                    "to": AsyncWeb3.to_checksum_address(call.target),
                    "data": call.call_data
                })
            except ContractLogicError as e:
                logger.debug(f"{call.function_name} reverted at {call.target}: {e}")
                return MulticallResult(
                    success=False,
                    result=None,
                    call_index=index,
                    function_name=call.function_name,
                    target=call.target,
                    error="call reverted"
                )
            except Exception as e:
                return MulticallResult(
                    success=False,
                    result=None,
                    call_index=index,
                    function_name=call.function_name,
                    target=call.target,
                    error=f"transport: {e}"
                )
            return self._decode(call, index, return_data)

        return await asyncio.gather(*[
            execute_single_call(call, i)
            for i, call in enumerate(calls)
        ])

    def _decode(self, call: MulticallRequest, index: int, return_data: bytes) -> MulticallResult:
        if call.decode_function is None:
            value = bytes(return_data)
        else:
            try:
                value = call.decode_function(bytes(return_data))
            except Exception as e:
                return MulticallResult(
                    success=False,
                    result=None,
                    call_index=index,
                    function_name=call.function_name,
                    target=call.target,
                    error=f"decode: {e}"
                )

        return MulticallResult(
            success=True,
            result=value,
            call_index=index,
            function_name=call.function_name,
            target=call.target
        )
