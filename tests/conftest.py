"""Test configuration and fixtures for GeoStake."""
from datetime import datetime, timedelta, timezone

import pytest

from geostake.core.config import GeoStakeConfig
from geostake.core.stake import Stake

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
STAKER = "0xAbCdEf0000000000000000000000000000000001"
CLAIMER = "0x00000000000000000000000000000000000000C1"
CONTRACT_ADDRESS = "0x1234567890AbcdEF1234567890aBcdef12345678"
TOKEN = "0x5425890298aed601595a70AB815c96711a31Bc65"

# Meters per degree of latitude on the haversine sphere
METERS_PER_DEGREE = 6_371_000 * 3.141592653589793 / 180


def north_of(lat: float, meters: float) -> float:
    """Latitude the given distance due north."""
    return lat + meters / METERS_PER_DEGREE


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_stake():
    """Factory for stake records with sensible defaults."""
    def _make(**overrides):
        fields = dict(
            stake_id=7,
            transaction_hash="0x" + "ab" * 32,
            staker_address=STAKER.lower(),
            token_address="0x0000000000000000000000000000000000000000",
            token_symbol="AVAX",
            amount="1.5",
            latitude=40.7128,
            longitude=-74.006,
            duration_hours=24,
            created_at=T0,
            network="avalanche-fuji",
            contract_address=CONTRACT_ADDRESS.lower(),
        )
        fields.update(overrides)
        return Stake(**fields)
    return _make


@pytest.fixture
def stake(make_stake):
    return make_stake()


@pytest.fixture
def stake_row(stake):
    """The stake as the database returns it."""
    row = stake.to_row()
    row["id"] = 1
    return row


@pytest.fixture
def config():
    return GeoStakeConfig(
        contract_address=CONTRACT_ADDRESS,
        supabase_url="https://example.supabase.co",
        supabase_key="anon-key",
        account_address=CLAIMER,
    )


@pytest.fixture
def clock():
    """A settable clock starting at T0."""
    class Clock:
        def __init__(self):
            self.now = T0

        def __call__(self):
            return self.now

        def advance(self, **kwargs):
            self.now += timedelta(**kwargs)

    return Clock()


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Keep tests away from the real config directory."""
    monkeypatch.setenv("GEOSTAKE_CONFIG_DIR", str(tmp_path / "config"))
    return tmp_path / "config"
