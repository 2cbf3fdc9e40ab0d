"""Stake and staker reward records."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from pydantic import BaseModel, field_validator, model_validator

from .geo import Position, from_contract_coordinate
from .rewards import to_wei
from .timing import compute_expiry

DEFAULT_NETWORK = "avalanche-fuji"

# Tolerance when checking a stored expires_at against created_at + duration
_EXPIRY_TOLERANCE = timedelta(seconds=1)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Stake(BaseModel):
    """A row of the stakes table."""
    id: Optional[int] = None
    stake_id: int
    transaction_hash: str
    staker_address: str
    token_address: str
    token_symbol: str
    amount: str  # display amount in token units ("1.5"), never wei
    latitude: float
    longitude: float
    duration_hours: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    claimed: bool = False
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    claimer_amount: Optional[str] = None  # wei
    staker_reward: Optional[str] = None  # wei
    refunded: bool = False
    refunded_at: Optional[datetime] = None
    network: str = DEFAULT_NETWORK
    contract_address: str = ""

    @field_validator("created_at", "expires_at", "claimed_at", "refunded_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("amount")
    @classmethod
    def _decimal_amount(cls, value: str) -> str:
        to_wei(value)
        return value.strip()

    @field_validator("duration_hours")
    @classmethod
    def _positive_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("duration_hours must be positive")
        return value

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "Stake":
        expected = compute_expiry(self.created_at, self.duration_hours)
        if self.expires_at is None:
            self.expires_at = expected
        elif abs(self.expires_at - expected) > _EXPIRY_TOLERANCE:
            raise ValueError(
                f"expires_at {self.expires_at.isoformat()} does not match "
                f"created_at + {self.duration_hours}h"
            )
        if self.claimed and self.refunded:
            raise ValueError(f"Stake #{self.stake_id} cannot be both claimed and refunded")
        return self

    @property
    def position(self) -> Position:
        return Position(self.latitude, self.longitude)

    @property
    def is_settled(self) -> bool:
        """True once the stake has been claimed or refunded."""
        return self.claimed or self.refunded

    def amount_wei(self, decimals: int) -> int:
        """The staked amount in wei, scaling the display amount by the token's decimals."""
        return to_wei(self.amount, decimals)

    def change_signature(self) -> Tuple[int, bool, bool, datetime]:
        """Fields whose change requires recomputing derived state."""
        return (self.stake_id, self.claimed, self.refunded, self.expires_at)

    def to_row(self) -> Dict[str, Any]:
        """Serialize for insertion into the stakes table."""
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)


class StakerReward(BaseModel):
    """Rewards a staker has earned from claims of their stakes, per token."""
    id: Optional[int] = None
    staker_address: str
    token_address: str
    token_symbol: str = ""
    total_earned: int = 0  # wei
    total_withdrawn: int = 0  # wei
    network: str = DEFAULT_NETWORK
    contract_address: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_balance(self) -> "StakerReward":
        if self.total_earned < 0 or self.total_withdrawn < 0:
            raise ValueError("Reward totals cannot be negative")
        if self.total_withdrawn > self.total_earned:
            raise ValueError("Withdrawn rewards exceed earned rewards")
        return self

    @property
    def available_balance(self) -> int:
        return self.total_earned - self.total_withdrawn

    def credit(self, amount: int) -> None:
        """Record reward earned from a claim."""
        if amount < 0:
            raise ValueError("Cannot credit a negative reward")
        self.total_earned += amount

    def debit(self, amount: int) -> None:
        """Record a withdrawal.

        Raises:
            ValueError: If the withdrawal exceeds the available balance
        """
        if amount < 0:
            raise ValueError("Cannot withdraw a negative amount")
        if amount > self.available_balance:
            raise ValueError(
                f"Withdrawal of {amount} exceeds available balance {self.available_balance}"
            )
        self.total_withdrawn += amount


@dataclass
class OnChainStake:
    """Stake state as returned by the contract's getStake."""
    stake_id: int
    staker: str
    token: str
    amount: int
    latitude: int
    longitude: int
    expires_at: int
    claimed: bool

    @classmethod
    def from_result(cls, stake_id: int, result: Sequence[Any]) -> "OnChainStake":
        staker, token, amount, latitude, longitude, expires_at, claimed = result
        return cls(
            stake_id=stake_id,
            staker=staker,
            token=token,
            amount=int(amount),
            latitude=int(latitude),
            longitude=int(longitude),
            expires_at=int(expires_at),
            claimed=bool(claimed),
        )

    @property
    def position(self) -> Position:
        return Position(from_contract_coordinate(self.latitude),
                        from_contract_coordinate(self.longitude))

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
