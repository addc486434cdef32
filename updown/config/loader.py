"""YAML config loader with env credential overrides and live-mode validation."""

import hashlib
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from updown.config.defaults import DEFAULT_ASSETS
from updown.config.schema import EngineConfig
from updown.execution.errors import ConfigurationError

logger = logging.getLogger(__name__)

# venue field -> environment variable consulted when the file leaves it empty
ENV_CREDENTIALS = {
    "api_key": "POLYMARKET_API_KEY",
    "api_secret": "POLYMARKET_API_SECRET",
    "api_passphrase": "POLYMARKET_PASSPHRASE",
    "private_key": "POLYMARKET_PRIVATE_KEY",
    "proxy_wallet_address": "POLYMARKET_WALLET",
}


def load_config(path: str | Path) -> EngineConfig:
    """Load and validate config from a YAML (or JSON) file.

    A missing file is created from the defaults so the operator has a
    template to edit. If no assets are listed, DEFAULT_ASSETS are injected.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Config %s not found, writing defaults", path)
        write_default_config(path)

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if "assets" not in raw or not raw["assets"]:
        raw["assets"] = [a.model_dump() for a in DEFAULT_ASSETS]

    venue = raw.setdefault("venue", {}) or {}
    raw["venue"] = venue
    for field, env_name in ENV_CREDENTIALS.items():
        if not venue.get(field) and os.environ.get(env_name):
            venue[field] = os.environ[env_name]

    return EngineConfig(**raw)


def write_default_config(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = EngineConfig(assets=DEFAULT_ASSETS).model_dump(mode="json")
    with open(path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)


def validate_for_trading(config: EngineConfig) -> None:
    """Startup checks that pydantic cannot express on its own.

    Raises ConfigurationError; the trading loop must not start after one.
    """
    if not config.enabled_assets:
        raise ConfigurationError("No enabled assets configured")
    if config.strategy.simulation_mode:
        return
    if not config.venue.private_key:
        raise ConfigurationError(
            "Live trading requires venue.private_key (or POLYMARKET_PRIVATE_KEY)"
        )


def validate_for_redeem(config: EngineConfig) -> str:
    """Return the wallet to redeem for, or raise ConfigurationError."""
    wallet = config.venue.proxy_wallet_address
    if not wallet:
        raise ConfigurationError(
            "Redeem mode requires venue.proxy_wallet_address (or POLYMARKET_WALLET)"
        )
    if not config.strategy.simulation_mode and not config.venue.private_key:
        raise ConfigurationError("Redeem mode requires venue.private_key")
    return wallet


def config_hash(config: EngineConfig) -> str:
    """Compute a deterministic SHA256 hash of the config (credentials excluded)."""
    data = config.model_dump_json(
        indent=None,
        exclude={"venue": {"api_key", "api_secret", "api_passphrase", "private_key"}},
    )
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def get_config_value(config: EngineConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'strategy.signal.danger_price'."""
    parts = dotted_key.split(".")
    obj: Any = config
    for part in parts:
        if isinstance(obj, list):
            obj = obj[int(part)]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        elif isinstance(obj, dict):
            obj = obj[part]
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj


def redacted_dump(config: EngineConfig) -> str:
    """YAML dump suitable for printing, with credentials masked."""
    data = config.model_dump(mode="json")
    for field in ("api_key", "api_secret", "api_passphrase", "private_key"):
        if data["venue"].get(field):
            data["venue"][field] = "***"
    return yaml.safe_dump(data, sort_keys=False)
