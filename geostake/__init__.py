"""GeoStake: stake tokens on a place, claim them by being there."""

__version__ = "0.1.0"
