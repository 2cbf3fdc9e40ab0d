"""Stake lifecycle engine: geodesy, timing, status, eligibility and rewards."""
from .eligibility import Eligibility, can_claim, can_refund, evaluate, is_owner, validate_claim_location
from .geo import CLAIM_DISTANCE_METERS, Position, distance_meters
from .rewards import RewardSplit, split_reward
from .stake import Stake, StakerReward
from .status import StakeStatus, classify
from .timing import EXPIRED, compute_expiry, format_remaining

__all__ = [
    "CLAIM_DISTANCE_METERS",
    "EXPIRED",
    "Eligibility",
    "Position",
    "RewardSplit",
    "Stake",
    "StakeStatus",
    "StakerReward",
    "can_claim",
    "can_refund",
    "classify",
    "compute_expiry",
    "distance_meters",
    "evaluate",
    "format_remaining",
    "is_owner",
    "split_reward",
    "validate_claim_location",
]
