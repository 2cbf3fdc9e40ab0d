"""Stake, claim, refund and reward withdrawal flows.

Each flow blocks until its transaction is confirmed. Nothing is written to the
database before confirmation, and a failed or timed-out transaction leaves the
stake record untouched. Failures propagate to the caller; nothing is retried.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from .chain import GeoStakeContract, is_native_token
from .config import GeoStakeConfig
from .eligibility import evaluate, validate_claim_location
from .errors import EligibilityError, PersistenceError
from .geo import CLAIM_DISTANCE_METERS, Position
from .location import LocationService
from .rewards import RewardSplit, split_reward, to_wei
from .stake import Stake, StakerReward
from .timing import utcnow


@dataclass
class ClaimResult:
    stake_id: int
    tx_hash: str
    distance_m: float
    split: Optional[RewardSplit]
    persisted: bool


@dataclass
class TransactionResult:
    stake_id: Optional[int]
    tx_hash: str
    persisted: bool


class StakeWorkflow:
    """Runs user actions against the contract and keeps the database in step."""

    def __init__(self, contract: GeoStakeContract, store, location: LocationService,
                 config: Optional[GeoStakeConfig] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.contract = contract
        self.store = store
        self.location = location
        self.config = config or contract.config
        self.claim_radius = self.config.claim_radius_m or CLAIM_DISTANCE_METERS
        self._clock = clock

    @property
    def address(self) -> str:
        return self.contract.sender

    async def create_stake(self, token_address: str, token_symbol: str, amount: str,
                           duration_hours: int,
                           position: Optional[Position] = None) -> Stake:
        """Stake tokens at the current (or given) position.

        Args:
            token_address: Token to stake (zero address for the native coin)
            token_symbol: Display symbol of the token
            amount: Decimal amount in token units
            duration_hours: How long the stake stays claimable
            position: Stake location; the device position is used if omitted

        Returns:
            The stake record (persisted unless the database write failed)
        """
        if duration_hours <= 0:
            raise ValueError("Duration must be at least one hour")
        position = position or await self.location.get_current_position(high_accuracy=True)
        decimals = await self.contract.get_token_decimals(token_address)
        amount_wei = to_wei(amount, decimals)
        if amount_wei <= 0:
            raise ValueError("Stake amount must be positive")

        if not is_native_token(token_address):
            allowance = await self.contract.get_allowance(token_address, self.address)
            if allowance < amount_wei:
                logger.info(f"Approving {amount} {token_symbol} for staking")
                approve_hash = await self.contract.approve(token_address, amount_wei)
                await self.contract.wait_for_receipt(approve_hash)

        tx_hash = await self.contract.stake(token_address, amount_wei, position.latitude,
                                            position.longitude, duration_hours)
        receipt = await self.contract.wait_for_receipt(tx_hash)
        stake_id = self.contract.extract_stake_id(receipt)
        logger.info(f"Stake #{stake_id} confirmed in {tx_hash}")

        stake = Stake(
            stake_id=stake_id,
            transaction_hash=tx_hash,
            staker_address=self.address.lower(),
            token_address=token_address.lower(),
            token_symbol=token_symbol,
            amount=amount,
            latitude=position.latitude,
            longitude=position.longitude,
            duration_hours=duration_hours,
            created_at=self._clock(),
            network=self.config.network,
            contract_address=self.contract.address.lower(),
        )
        try:
            return await self.store.insert_stake(stake)
        except PersistenceError as e:
            logger.error(f"Stake #{stake_id} is on chain but could not be saved: {e}")
            return stake

    async def claim(self, stake: Stake, position: Optional[Position] = None) -> ClaimResult:
        """Claim a stake in person.

        The proximity check runs right before submission. The contract may
        still reject the claim, in which case TransactionFailed propagates.

        Raises:
            EligibilityError: The stake is not claimable by this account
            LocationError: The position could not be obtained
            DistanceError: The claimer is outside the claim radius
            TransactionFailed: The claim reverted or was not confirmed
        """
        view = evaluate(stake, self.address, self._clock())
        if not view.can_claim:
            reason = ("You cannot claim your own stake" if view.is_owner
                      else "Only active stakes can be claimed")
            raise EligibilityError(stake.stake_id, view.status.value, reason)

        if position is None:
            position = await self.location.get_current_position(high_accuracy=True)
        distance = validate_claim_location(position, stake.position, self.claim_radius)
        logger.info(f"Claiming stake #{stake.stake_id} from {round(distance)}m away")

        tx_hash = await self.contract.claim(stake.stake_id)
        receipt = await self.contract.wait_for_receipt(tx_hash)

        split = self.contract.extract_claim_split(receipt)
        if split is None:
            logger.error(
                f"StakeClaimed event missing from {tx_hash}; "
                f"recording claim of #{stake.stake_id} without amounts"
            )

        persisted = await self._record_claim(stake, split)
        return ClaimResult(stake.stake_id, tx_hash, distance, split, persisted)

    async def _record_claim(self, stake: Stake, split: Optional[RewardSplit]) -> bool:
        try:
            await self.store.mark_as_claimed(
                stake.stake_id, self.address,
                claimer_amount=split.claimer_amount if split else None,
                staker_reward=split.staker_reward if split else None,
                claimed_at=self._clock(),
            )
            if split and split.staker_reward > 0:
                await self.store.update_staker_reward(
                    stake.staker_address, stake.token_address, stake.token_symbol,
                    split.staker_reward,
                )
        except PersistenceError as e:
            logger.error(f"Claim of #{stake.stake_id} confirmed but not saved: {e}")
            return False
        return True

    async def refund(self, stake: Stake) -> TransactionResult:
        """Refund an expired, unclaimed stake to its staker."""
        view = evaluate(stake, self.address, self._clock())
        if not view.can_refund:
            reason = ("Only the original staker can refund" if not view.is_owner
                      else "Only expired stakes can be refunded")
            raise EligibilityError(stake.stake_id, view.status.value, reason)

        tx_hash = await self.contract.refund(stake.stake_id)
        await self.contract.wait_for_receipt(tx_hash)
        logger.info(f"Stake #{stake.stake_id} refunded in {tx_hash}")

        try:
            await self.store.mark_as_refunded(stake.stake_id, refunded_at=self._clock())
        except PersistenceError as e:
            logger.error(f"Refund of #{stake.stake_id} confirmed but not saved: {e}")
            return TransactionResult(stake.stake_id, tx_hash, False)
        return TransactionResult(stake.stake_id, tx_hash, True)

    async def withdraw_rewards(self, reward: StakerReward) -> TransactionResult:
        """Withdraw the available staker reward balance for one token."""
        amount = reward.available_balance
        if amount <= 0:
            raise ValueError(f"No {reward.token_symbol or reward.token_address} rewards to withdraw")

        tx_hash = await self.contract.withdraw_rewards(reward.token_address)
        await self.contract.wait_for_receipt(tx_hash)
        reward.debit(amount)
        logger.info(f"Withdrew {amount} wei of {reward.token_symbol} rewards in {tx_hash}")

        try:
            await self.store.record_reward_withdrawal(self.address, reward.token_address, amount)
        except PersistenceError as e:
            logger.error(f"Withdrawal {tx_hash} confirmed but not saved: {e}")
            return TransactionResult(None, tx_hash, False)
        return TransactionResult(None, tx_hash, True)

    async def preview_split(self, stake: Stake) -> RewardSplit:
        return await preview_split(self.contract, stake)


async def preview_split(contract: GeoStakeContract, stake: Stake) -> RewardSplit:
    """What a claim of this stake would pay, at the contract's current rate."""
    bps = await contract.get_staker_reward_bps()
    decimals = await contract.get_token_decimals(stake.token_address)
    return split_reward(stake.amount_wei(decimals), bps)
