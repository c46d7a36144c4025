"""Interest-rate and capacity arithmetic for lending paths.

Rates are integer per-second values scaled by WAD (1e18), the representation
used by the lending module. Amounts are integer token base units.
"""
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Union

WAD = 10 ** 18
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# 2% haircut on available capacity (0.98 in basis points)
SAFETY_FACTOR_BPS = 9_800
BPS = 10_000

# Repayments add 1% to cover interest accrued before the transaction lands
REPAY_BUFFER_BPS = 10_100


def current_lent(lent: int, owed_per_second: int, as_of: int, now: int) -> int:
    """Outstanding principal plus interest accrued since the snapshot."""
    elapsed = max(0, now - as_of)
    return lent + owed_per_second * elapsed


def available_capacity(
    lending_cap: int,
    lent: int,
    owed_per_second: int,
    as_of: int,
    liquid_balance: int,
    now: int
) -> int:
    """
    Principal a lender can still supply after the safety haircut.

    Args:
        lending_cap: Maximum principal the lender is willing to lend
        lent: Outstanding principal at the snapshot
        owed_per_second: Interest accrual rate on the outstanding principal
        as_of: Block timestamp of the snapshot
        liquid_balance: Spendable token balance
        now: Current unix timestamp

    Returns:
        Available amount in base units, 0 when nothing can be lent
    """
    if lending_cap <= 0:
        return 0

    headroom = lending_cap - current_lent(lent, owed_per_second, as_of, now)
    raw = min(headroom, liquid_balance)
    if raw <= 0:
        return 0

    return raw * SAFETY_FACTOR_BPS // BPS


def relay_rate_ceiling(outgoing_rate: int, min_ir_margin: int, max_borrow_ir: int) -> Optional[int]:
    """
    Highest rate a relayer accepts from upstream given the rate it charges downstream.

    Returns None when the relayer cannot earn its margin at any non-negative rate.
    """
    ceiling = min(outgoing_rate - min_ir_margin, max_borrow_ir)
    if ceiling < 0:
        return None
    return ceiling


def satisfies_margin(pay_rate: int, earn_rate: int, min_ir_margin: int) -> bool:
    """Check that a relayer's spread covers its required margin."""
    return earn_rate - pay_rate >= min_ir_margin


def apr_to_rate(apr_percent: Union[int, float, str, Decimal]) -> int:
    """Convert an annual percentage (e.g. 5 for 5%) to a per-second WAD rate."""
    per_year = Decimal(str(apr_percent)) / Decimal(100)
    return int((per_year * WAD / SECONDS_PER_YEAR).to_integral_value(rounding=ROUND_DOWN))


def rate_to_apr(rate: int) -> float:
    """Convert a per-second WAD rate to an annual percentage."""
    return rate / WAD * SECONDS_PER_YEAR * 100


def format_apr(rate: int) -> str:
    """Format a per-second WAD rate as a two-decimal annual percentage."""
    return f"{rate_to_apr(rate):.2f}"


def format_token_amount(amount: int, decimals: int = 6) -> str:
    """Format a base-unit token amount with two decimals."""
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def with_repay_buffer(amount: int) -> int:
    """Amount to repay including the accrued-interest buffer."""
    return amount * REPAY_BUFFER_BPS // BPS
