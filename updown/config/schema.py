"""Pydantic v2 configuration schema with strict validation."""

from enum import StrEnum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

MINUTES_PER_DAY = 1440


class RiskManagementMode(StrEnum):
    PRICE = "price"  # sell the filled side at danger_price
    TIME = "time"    # sell the filled side after danger_time_passed
    NONE = "none"    # hold to resolution


_RISK_MODE_ALIASES = {
    "sell_at_danger_price": RiskManagementMode.PRICE,
    "sell_after_danger_time_passed": RiskManagementMode.TIME,
}


class AssetConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    symbol: str  # BTC
    slug: str  # bitcoin, used by hourly market slugs
    enabled: bool = True

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("asset symbol must not be empty")
        return v.strip().upper()


class SignalConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    enabled: bool = True
    stable_min: float = Field(default=0.35, ge=0.0, le=1.0)
    stable_max: float = Field(default=0.65, ge=0.0, le=1.0)
    clear_threshold: float = Field(default=0.99, ge=0.0, le=1.0)
    clear_remaining_mins: int = Field(default=15, ge=0)
    danger_price: float = Field(default=0.15, ge=0.0, le=1.0)
    danger_time_passed: int = Field(default=30, ge=0)
    one_side_buy_risk_management: RiskManagementMode = RiskManagementMode.NONE
    mid_market_enabled: bool = True

    @field_validator("one_side_buy_risk_management", mode="before")
    @classmethod
    def _normalize_risk_mode(cls, v: object) -> object:
        if isinstance(v, str):
            key = v.strip().lower()
            return _RISK_MODE_ALIASES.get(key, key)
        return v

    @model_validator(mode="after")
    def _check_stable_band(self) -> "SignalConfig":
        if self.stable_min > self.stable_max:
            raise ValueError(
                f"stable_min {self.stable_min} > stable_max {self.stable_max}"
            )
        return self


class StrategyConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    price_limit: float = Field(default=0.45, gt=0.0, lt=1.0)
    shares: float = Field(default=5.0, gt=0.0)
    mid_market_shares: float | None = Field(default=None, gt=0.0)
    place_order_before_mins: int = Field(default=3, ge=0)
    check_interval_ms: int = Field(default=2000, ge=100)
    simulation_mode: bool = False
    sell_opposite_above: float = Field(default=0.95, ge=0.0, le=1.0)
    sell_opposite_time_remaining: int = Field(default=15, ge=0)
    market_closure_check_interval_seconds: int = Field(default=120, ge=1)
    period_minutes: int = Field(default=15, ge=1, le=MINUTES_PER_DAY)
    timezone: str = "America/New_York"
    signal: SignalConfig = SignalConfig()

    @field_validator("period_minutes")
    @classmethod
    def _period_divides_day(cls, v: int) -> int:
        if MINUTES_PER_DAY % v != 0:
            raise ValueError(f"period_minutes {v} must divide {MINUTES_PER_DAY}")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone {v!r}") from e
        return v

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def effective_mid_market_shares(self) -> float:
        return self.mid_market_shares if self.mid_market_shares is not None else self.shares


class VenueConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    gamma_api_url: str = "https://gamma-api.polymarket.com"
    clob_api_url: str = "https://clob.polymarket.com"
    data_api_url: str = "https://data-api.polymarket.com"
    polygon_rpc_url: str = "https://polygon-rpc.com"
    api_key: str | None = None
    api_secret: str | None = None
    api_passphrase: str | None = None
    private_key: str | None = None
    proxy_wallet_address: str | None = None
    signature_type: int | None = Field(default=None, ge=0, le=2)
    chain_id: int = 137


class OpsConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    request_timeout_seconds: float = Field(default=15.0, gt=0.0)
    max_retries: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=0.5, ge=0.0)
    status_interval_seconds: int = Field(default=10, ge=1)
    log_level: str = "INFO"


class EngineConfig(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    venue: VenueConfig = VenueConfig()
    strategy: StrategyConfig = StrategyConfig()
    ops: OpsConfig = OpsConfig()
    assets: list[AssetConfig] = []

    @property
    def enabled_assets(self) -> list[AssetConfig]:
        return [a for a in self.assets if a.enabled]
