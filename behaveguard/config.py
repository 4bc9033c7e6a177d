from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from behaveguard.delivery.policies import OverflowPolicy


class DeliveryConfig(BaseModel):
    """Delivery queue and transport settings.

    Durations are milliseconds to match the capture layer's configuration.
    """

    endpoint: str = "http://127.0.0.1:8430/analytics"
    api_key: str | None = None
    batch_size: int = Field(default=10, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    fallback_delay_ms: int = Field(default=1000, ge=0)
    request_timeout_s: float = Field(default=15.0, gt=0)
    max_pending: int | None = Field(default=None, ge=1)
    overflow_policy: OverflowPolicy = OverflowPolicy.unbounded

    @model_validator(mode="after")
    def _bounded_policy_requires_cap(self) -> DeliveryConfig:
        if self.overflow_policy != OverflowPolicy.unbounded and self.max_pending is None:
            raise ValueError("delivery.max_pending is required when overflow_policy is bounded")
        return self


class ReconcileConfig(BaseModel):
    bucket_seconds: int = Field(default=60, ge=1)


class RiskThresholds(BaseModel):
    typing_wpm_max: float = 120
    typing_wpm_min: float = 10
    mouse_velocity_max: float = 1000
    scroll_speed_max: float = 500
    focus_time_min_ms: float = 5000
    correction_ratio_max: float = 0.3
    points_per_factor: int = Field(default=20, ge=1)
    high_tier_min: int = Field(default=70, ge=0, le=100)
    medium_tier_min: int = Field(default=40, ge=0, le=100)

    @model_validator(mode="after")
    def _ordered_tiers(self) -> RiskThresholds:
        if self.medium_tier_min > self.high_tier_min:
            raise ValueError("risk.medium_tier_min must not exceed risk.high_tier_min")
        return self


class StorageConfig(BaseModel):
    data_dir: Path = Path("./data")
    db_name: str = "behaveguard.db"

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8430
    auth_token: str | None = None

    @model_validator(mode="after")
    def _validate_remote_requires_auth(self) -> ServerConfig:
        if self.host == "0.0.0.0" and self.auth_token is None:  # noqa: S104
            raise ValueError("server.auth_token is required when host is 0.0.0.0")
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class TelemetryConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enabled: bool = False
    endpoint: str = "localhost:4317"
    env: str = "dev"


class BehaveGuardSettings(BaseSettings):
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    risk: RiskThresholds = Field(default_factory=RiskThresholds)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    model_config = SettingsConfigDict(
        env_prefix="BEHAVEGUARD_",
        env_nested_delimiter="__",
        extra="ignore",
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "BEHAVEGUARD_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/behaveguard.yaml") -> BehaveGuardSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("behaveguard", loaded)
    if not isinstance(raw, dict):
        raise ValueError("behaveguard config section must be a mapping")

    merged = _apply_env_overrides(raw)
    return BehaveGuardSettings.model_validate(merged)


__all__ = [
    "BehaveGuardSettings",
    "DeliveryConfig",
    "LoggingConfig",
    "ReconcileConfig",
    "RiskThresholds",
    "ServerConfig",
    "StorageConfig",
    "TelemetryConfig",
    "load_config",
]
