"""GeoStake client configuration."""
import json
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel

NETWORKS: Dict[str, Dict[str, Any]] = {
    "avalanche-fuji": {
        "chain_id": 43113,
        "rpc_url": "https://api.avax-test.network/ext/bc/C/rpc",
        "native_symbol": "AVAX",
        "explorer_url": "https://testnet.snowtrace.io",
    },
    "avalanche": {
        "chain_id": 43114,
        "rpc_url": "https://api.avax.network/ext/bc/C/rpc",
        "native_symbol": "AVAX",
        "explorer_url": "https://snowtrace.io",
    },
}

ENV_PREFIX = "GEOSTAKE_"

# Never written to the config file
SECRET_FIELDS = {"private_key", "supabase_key"}

# Filled from the network preset when not set
PRESET_FIELDS = ("rpc_url", "chain_id")


class GeoStakeConfig(BaseModel):
    """Connection settings and tuning knobs."""
    network: str = "avalanche-fuji"
    rpc_url: Optional[str] = None
    chain_id: Optional[int] = None
    contract_address: Optional[str] = None
    account_address: Optional[str] = None
    private_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    location_url: Optional[str] = None
    claim_radius_m: float = 100
    status_interval: float = 10
    refresh_interval: float = 30
    location_timeout: float = 10
    location_max_age: float = 60
    receipt_timeout: float = 120
    log_level: str = "INFO"

    def __init__(self, **data):
        super().__init__(**data)
        # Fill network defaults that were not set explicitly
        preset = NETWORKS.get(self.network)
        if preset:
            if self.rpc_url is None:
                self.rpc_url = preset["rpc_url"]
            if self.chain_id is None:
                self.chain_id = preset["chain_id"]

    @property
    def native_symbol(self) -> str:
        return NETWORKS.get(self.network, {}).get("native_symbol", "ETH")

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        explorer = NETWORKS.get(self.network, {}).get("explorer_url")
        return f"{explorer}/tx/{tx_hash}" if explorer else None


def get_config_dir() -> Path:
    """Get platform-specific config directory."""
    override = os.getenv(f"{ENV_PREFIX}CONFIG_DIR")
    if override:
        return Path(override)
    if os.name == 'nt':  # Windows
        return Path(os.getenv('APPDATA', Path.home())) / 'geostake'
    elif platform.system() == 'Darwin':  # macOS
        return Path.home() / 'Library' / 'Application Support' / 'geostake'
    else:  # Linux and others
        return Path.home() / '.config' / 'geostake'


def _env_overrides() -> Dict[str, str]:
    overrides = {}
    for name in GeoStakeConfig.model_fields:
        value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}


def _preset_values(network: str) -> Dict[str, Any]:
    preset = NETWORKS.get(network, {})
    return {field: preset[field] for field in PRESET_FIELDS if field in preset}


def load_config(config_dir: Optional[Path] = None) -> GeoStakeConfig:
    """Load configuration from disk, then apply GEOSTAKE_* environment overrides.

    Args:
        config_dir: Directory holding config.json (defaults to the platform dir)

    Returns:
        The merged configuration
    """
    data = _read_config_file((config_dir or get_config_dir()) / 'config.json')
    data.update(_env_overrides())
    return GeoStakeConfig(**data)


def save_config(config: GeoStakeConfig, config_dir: Optional[Path] = None) -> Path:
    """Save configuration to disk, leaving out secrets and network preset values."""
    config_dir = config_dir or get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / 'config.json'
    data = config.model_dump(exclude=SECRET_FIELDS)
    for field, value in _preset_values(config.network).items():
        if data.get(field) == value:
            del data[field]
    with open(config_path, 'w') as f:
        json.dump(data, f, indent=2)
    return config_path


def update_config(key: str, value: Any, config_dir: Optional[Path] = None) -> Path:
    """Change one setting in the config file.

    Only the file's own contents are rewritten, so environment overrides are
    never persisted. Switching network drops RPC settings that came from the
    old network's preset.

    Raises:
        ValueError: If the resulting configuration is invalid
    """
    config_dir = config_dir or get_config_dir()
    data = _read_config_file(config_dir / 'config.json')
    if key == "network":
        old_network = data.get("network", GeoStakeConfig.model_fields["network"].default)
        for field, preset_value in _preset_values(old_network).items():
            if data.get(field, preset_value) == preset_value:
                data.pop(field, None)
    data[key] = value
    return save_config(GeoStakeConfig(**data), config_dir)
