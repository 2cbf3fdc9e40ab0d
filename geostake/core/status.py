"""Stake lifecycle status."""
from datetime import datetime
from enum import Enum

from .stake import Stake


class StakeStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CLAIMED = "claimed"
    REFUNDED = "refunded"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def classify(stake: Stake, now: datetime) -> StakeStatus:
    """Derive a stake's status from its stored flags and the current time.

    Claimed and refunded are terminal and win over expiry, so a stake claimed
    a second before it expired stays claimed forever.

    Args:
        stake: Stake record
        now: Reference time

    Returns:
        The lifecycle status
    """
    if stake.claimed:
        return StakeStatus.CLAIMED
    if stake.refunded:
        return StakeStatus.REFUNDED
    if now >= stake.expires_at:
        return StakeStatus.EXPIRED
    return StakeStatus.ACTIVE


def describe_status(status: StakeStatus, time_remaining: str = "") -> str:
    """User-facing explanation of what can happen to a stake in this status."""
    if status is StakeStatus.CLAIMED:
        return "This stake has been claimed and is no longer available."
    if status is StakeStatus.REFUNDED:
        return "This stake has been refunded to the original staker."
    if status is StakeStatus.EXPIRED:
        return "This stake has expired. Only the original staker can now refund the tokens."
    return (f"This stake is active for {time_remaining}. "
            "Anyone except the original staker can claim it during this period.")
