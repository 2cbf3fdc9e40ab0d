"""Expiry and remaining-time helpers."""
from datetime import datetime, timedelta, timezone

EXPIRED = "EXPIRED"
SECONDS_PER_HOUR = 3600


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def duration_seconds(duration_hours: int) -> int:
    return int(duration_hours) * SECONDS_PER_HOUR


def compute_expiry(created_at: datetime, duration_hours: float) -> datetime:
    """Get the expiry time of a stake.

    Args:
        created_at: When the stake was created
        duration_hours: How long the stake stays claimable

    Returns:
        created_at plus the duration
    """
    return created_at + timedelta(seconds=duration_hours * SECONDS_PER_HOUR)


def format_remaining(expires_at: datetime, now: datetime) -> str:
    """Format the time left until expiry, largest unit first.

    Each unit is truncated, never rounded up, so a stake with 59.9 seconds
    left shows "59s".

    Args:
        expires_at: Expiry time
        now: Reference time

    Returns:
        "EXPIRED" once now >= expires_at, otherwise e.g. "1d 1h 1m",
        "3h 12m", "4m 5s" or "42s"
    """
    if now >= expires_at:
        return EXPIRED

    total_seconds = int((expires_at - now).total_seconds())
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
