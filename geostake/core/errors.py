"""Error types raised by GeoStake."""
from typing import Optional


class GeoStakeError(Exception):
    """Base class for all GeoStake errors."""


class LocationError(GeoStakeError):
    """The device position could not be obtained."""


class LocationPermissionDenied(LocationError):
    """Location access was denied."""

    def __init__(self, message: str = "Location access denied. Please enable location access."):
        super().__init__(message)


class LocationTimeout(LocationError):
    """No position fix arrived before the timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for a location fix")


class LocationUnavailable(LocationError):
    """The location provider is unsupported or returned no usable fix."""


class DistanceError(GeoStakeError):
    """The requester is too far from the stake to claim it."""

    def __init__(self, distance_m: float, max_distance_m: float):
        self.distance_m = distance_m
        self.max_distance_m = max_distance_m
        super().__init__(
            f"You must be within {max_distance_m:g}m of the stake to claim it. "
            f"You are {round(distance_m)}m away."
        )


class EligibilityError(GeoStakeError):
    """The requested action is not allowed for this stake right now."""

    def __init__(self, stake_id: int, status: str, reason: str):
        self.stake_id = stake_id
        self.status = status
        self.reason = reason
        super().__init__(f"Stake #{stake_id} ({status}): {reason}")


class ChainError(GeoStakeError):
    """A contract read or transaction failed."""


class ContractNotConfigured(ChainError):
    """No contract address (or signing key) has been configured."""


class TransactionFailed(ChainError):
    """A transaction reverted, timed out or was rejected."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ReceiptDecodeError(ChainError):
    """An expected event was missing from a confirmed receipt."""

    def __init__(self, tx_hash: str, event: str):
        self.tx_hash = tx_hash
        self.event = event
        super().__init__(f"Could not find {event} event in receipt of {tx_hash}")


class PersistenceError(GeoStakeError):
    """The hosted database could not be read or written."""
