"""Device position acquisition."""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import aiohttp
from loguru import logger

from .errors import LocationError, LocationPermissionDenied, LocationTimeout, LocationUnavailable
from .geo import Position

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_AGE = 60.0


class LocationProvider(Protocol):
    async def get_position(self, high_accuracy: bool = True) -> Position:
        ...


class StaticLocationProvider:
    """Reports a fixed position, e.g. coordinates given on the command line."""

    def __init__(self, position: Optional[Position] = None):
        self.position = position

    async def get_position(self, high_accuracy: bool = True) -> Position:
        if self.position is None:
            raise LocationUnavailable("No position supplied. Pass --lat and --lon.")
        return self.position


class HTTPLocationProvider:
    """Fetches a position fix from a JSON geolocation endpoint.

    The response must carry either lat/lon or latitude/longitude keys.
    """

    def __init__(self, url: str):
        self.url = url

    async def get_position(self, high_accuracy: bool = True) -> Position:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(self.url, params={"high_accuracy": int(high_accuracy)}) as response:
                    if response.status in (401, 403):
                        raise LocationPermissionDenied()
                    if response.status != 200:
                        raise LocationUnavailable(
                            f"Location service returned HTTP {response.status}"
                        )
                    data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise LocationUnavailable(f"Location service unreachable: {e}") from e

        lat = data.get("lat", data.get("latitude"))
        lon = data.get("lon", data.get("longitude"))
        if lat is None or lon is None:
            raise LocationUnavailable("Location service returned no coordinates")
        return Position(float(lat), float(lon))


@dataclass
class Fix:
    position: Position
    obtained_at: float


class LocationService:
    """Wraps a provider with a timeout and a cache of recent fixes."""

    def __init__(self, provider: LocationProvider, timeout: float = DEFAULT_TIMEOUT,
                 max_age: float = DEFAULT_MAX_AGE, clock: Callable[[], float] = time.monotonic):
        """Initialize the location service.

        Args:
            provider: Source of position fixes
            timeout: Seconds to wait for a fix
            max_age: Seconds a previous fix stays acceptable
            clock: Monotonic clock, injectable for tests
        """
        self.provider = provider
        self.timeout = timeout
        self.max_age = max_age
        self._clock = clock
        self._last_fix: Optional[Fix] = None

    @property
    def last_fix(self) -> Optional[Fix]:
        return self._last_fix

    async def get_current_position(self, high_accuracy: bool = True) -> Position:
        """Get the current position, reusing a fix younger than max_age.

        Raises:
            LocationPermissionDenied: Location access was refused
            LocationTimeout: No fix within the timeout
            LocationUnavailable: The provider could not produce a fix
        """
        now = self._clock()
        if self._last_fix and now - self._last_fix.obtained_at <= self.max_age:
            logger.debug(f"Using cached location fix {self._last_fix.position}")
            return self._last_fix.position

        try:
            position = await asyncio.wait_for(
                self.provider.get_position(high_accuracy), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise LocationTimeout(self.timeout) from None
        except LocationError:
            raise
        except Exception as e:
            raise LocationUnavailable(f"Unable to get your location: {e}") from e

        self._last_fix = Fix(position, self._clock())
        logger.debug(f"Obtained location fix {position}")
        return position
