"""Reward split and token amount arithmetic.

All token math is done on integer wei. Floats are rejected outright so that a
value transfer can never drift by a rounding error.
"""
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

BASIS_POINTS_DENOMINATOR = 10_000
DEFAULT_STAKER_REWARD_BPS = 500
DEFAULT_DECIMALS = 18


class RewardSplit(NamedTuple):
    claimer_amount: int
    staker_reward: int


def _require_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")


def split_reward(total_amount: int, staker_reward_bps: int) -> RewardSplit:
    """Split a claimed stake between the claimer and the original staker.

    The staker's share is floored, so any remainder stays with the claimer.

    Args:
        total_amount: Stake amount in wei
        staker_reward_bps: Staker share in basis points (500 = 5%), as read
            from the contract

    Returns:
        RewardSplit(claimer_amount, staker_reward)
    """
    _require_int("total_amount", total_amount)
    _require_int("staker_reward_bps", staker_reward_bps)
    if total_amount < 0:
        raise ValueError("total_amount cannot be negative")
    if not 0 <= staker_reward_bps <= BASIS_POINTS_DENOMINATOR:
        raise ValueError(f"staker_reward_bps must be within 0..{BASIS_POINTS_DENOMINATOR}")

    staker_reward = total_amount * staker_reward_bps // BASIS_POINTS_DENOMINATOR
    return RewardSplit(total_amount - staker_reward, staker_reward)


def bps_to_percent(bps: int) -> Decimal:
    return Decimal(bps) / 100


def to_wei(amount: str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a decimal token amount string to integer wei.

    Raises:
        ValueError: If the amount is not a non-negative decimal or has more
            fractional digits than the token supports
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid token amount: {amount!r}") from None
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid token amount: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


def format_token_amount(amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Format wei as a decimal string with trailing zeros trimmed."""
    _require_int("amount", amount)
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10 ** decimals)
    if fraction == 0:
        return f"{sign}{whole}"
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{fraction_str}"
