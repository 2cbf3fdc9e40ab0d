"""Geodesy helpers for stake locations."""
import math
from dataclasses import dataclass

EARTH_RADIUS_METERS = 6_371_000
CLAIM_DISTANCE_METERS = 100
COORDINATE_SCALE = 1_000_000


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points using the haversine formula.

    Args:
        lat1: Latitude of the first point in decimal degrees
        lon1: Longitude of the first point in decimal degrees
        lat2: Latitude of the second point in decimal degrees
        lon2: Longitude of the second point in decimal degrees

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    # Clamp against rounding so sqrt(1 - a) stays real
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


@dataclass(frozen=True)
class Position:
    """A point on the map in decimal degrees."""
    latitude: float
    longitude: float

    def distance_to(self, other: "Position") -> float:
        return distance_meters(self.latitude, self.longitude, other.latitude, other.longitude)

    def __str__(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


def to_contract_coordinate(degrees: float) -> int:
    """Scale decimal degrees to the contract's integer representation."""
    return int(round(degrees * COORDINATE_SCALE))


def from_contract_coordinate(value: int) -> float:
    """Convert a contract coordinate back to decimal degrees."""
    return value / COORDINATE_SCALE


def format_coordinate(value: int) -> str:
    return f"{from_contract_coordinate(value):.6f}"
