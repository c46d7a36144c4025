"""Contract ABIs and call encoding for the Raila lending module."""
from typing import Any, List, Sequence

from eth_abi import decode, encode
from web3 import Web3

# Safe.isModuleEnabled(address) -> bool
SAFE_IS_MODULE_ENABLED = "isModuleEnabled(address)"

# RailaModule.limits(address) -> (lendingCap, minLendIR, borrowCap, maxBorrowIR, minIRMargin)
MODULE_LIMITS = "limits(address)"
MODULE_LIMITS_OUTPUT = ["uint256", "uint256", "uint256", "uint256", "uint256"]

# RailaModule.balances(address) -> (lent, owedPerSecond, borrowed, owesPerSecond, timestamp)
MODULE_BALANCES = "balances(address)"
MODULE_BALANCES_OUTPUT = ["uint256", "uint256", "uint256", "uint256", "uint256"]

# RailaModule.loans(lender, borrower) -> (amount, interestRatePerSecond, timestamp)
MODULE_LOANS = "loans(address,address)"
MODULE_LOANS_OUTPUT = ["uint256", "uint256", "uint256"]

# ERC20.balanceOf(address) -> uint256
ERC20_BALANCE_OF = "balanceOf(address)"

MULTICALL3_ABI = [{
    "name": "aggregate3",
    "type": "function",
    "stateMutability": "payable",
    "inputs": [{
        "name": "calls",
        "type": "tuple[]",
        "components": [
            {"name": "target", "type": "address"},
            {"name": "allowFailure", "type": "bool"},
            {"name": "callData", "type": "bytes"},
        ],
    }],
    "outputs": [{
        "name": "returnData",
        "type": "tuple[]",
        "components": [
            {"name": "success", "type": "bool"},
            {"name": "returnData", "type": "bytes"},
        ],
    }],
}]


def function_selector(signature: str) -> bytes:
    """First four bytes of the keccak hash of a function signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: Sequence[str], args: Sequence[Any]) -> bytes:
    """Encode calldata for `signature` with ABI-encoded arguments."""
    return function_selector(signature) + encode(list(arg_types), list(args))


def decode_output(output_types: List[str], data: bytes) -> tuple:
    """Decode return data, rejecting empty responses from non-contract targets."""
    if not data:
        raise ValueError("Empty return data")
    return decode(output_types, bytes(data))


def decode_bool(data: bytes) -> bool:
    """Decode a bool; an empty response (no contract at target) reads as False."""
    if not data:
        return False
    return decode(["bool"], bytes(data))[0]


def decode_uint(data: bytes) -> int:
    return decode_output(["uint256"], data)[0]
