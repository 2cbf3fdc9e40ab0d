"""Claim and refund eligibility."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import DistanceError
from .geo import CLAIM_DISTANCE_METERS, Position
from .stake import Stake
from .status import StakeStatus, classify
from .timing import format_remaining


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two chain addresses, ignoring case."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_owner(stake: Stake, address: Optional[str]) -> bool:
    return same_address(stake.staker_address, address)


def can_claim(stake: Stake, status: StakeStatus, is_owner: bool) -> bool:
    """Anyone but the staker may claim an active stake."""
    return status is StakeStatus.ACTIVE and not is_owner


def can_refund(stake: Stake, status: StakeStatus, is_owner: bool) -> bool:
    """Only the staker may refund, and only after expiry."""
    return status is StakeStatus.EXPIRED and is_owner


def validate_claim_location(user_pos: Position, stake_pos: Position,
                            max_distance: float = CLAIM_DISTANCE_METERS) -> float:
    """Pre-flight proximity check before submitting a claim.

    Passing this check does not guarantee the claim transaction succeeds.

    Args:
        user_pos: Requester's current position
        stake_pos: Stake location
        max_distance: Claim radius in meters

    Returns:
        The measured distance in meters

    Raises:
        DistanceError: If the requester is further than max_distance away
    """
    distance = user_pos.distance_to(stake_pos)
    if distance > max_distance:
        raise DistanceError(distance, max_distance)
    return distance


@dataclass
class Eligibility:
    """A stake as seen by one viewer at one point in time."""
    stake: Stake
    status: StakeStatus
    is_owner: bool
    can_claim: bool
    can_refund: bool
    time_remaining: str

    @property
    def stake_id(self) -> int:
        return self.stake.stake_id


def evaluate(stake: Stake, viewer_address: Optional[str], now: datetime) -> Eligibility:
    status = classify(stake, now)
    owner = is_owner(stake, viewer_address)
    return Eligibility(
        stake=stake,
        status=status,
        is_owner=owner,
        can_claim=can_claim(stake, status, owner),
        can_refund=can_refund(stake, status, owner),
        time_remaining=format_remaining(stake.expires_at, now),
    )
