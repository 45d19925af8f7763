from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apimon._version import __version__


class Environments(StrEnum):
    DEV = "dev"
    PROD = "prod"

    def is_production(self) -> bool:
        return self == self.PROD

    def is_development(self) -> bool:
        return self == self.DEV


class Settings(BaseSettings):
    """Monitoring configuration."""

    model_config = SettingsConfigDict(
        env_prefix="APIMON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: Environments = Environments.DEV
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_format: Literal["text", "json"] = "text"

    # Alert thresholds.
    error_rate_threshold: float = 5.0
    latency_threshold_ms: float = 2000.0
    p95_threshold_ms: float = 1000.0
    memory_threshold: float = 85.0
    error_rate_min_requests: int = 10
    p95_min_requests: int = 20

    # In-memory retention.
    max_stored_calls: int = 10_000
    max_stored_metrics: int = 1440  # 24h at one sample per minute

    # System metrics sampling.
    sample_interval_seconds: float = 60.0
    memory_alert_warmup_seconds: float = 30.0

    # Snapshot persistence.
    persistence_enabled: bool = True
    persist_interval_seconds: float = 300.0
    snapshot_path: str = str(Path("data") / "api-monitoring.json")
    snapshot_max_calls: int = 1000
    snapshot_max_metrics: int = 100

    # Dashboard settings.
    sla_target: float = 99.9
    slow_endpoint_min_requests: int = 5
    dashboard_recent_calls_limit: int = 50
    dashboard_slowest_limit: int = 10
    dashboard_time_series_hours: int = 24

    # Request capture.
    normalize_paths: bool = True
    user_id_header: str = "user-id"

    version: str = __version__

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env_aliases(cls, value: object) -> object:
        """Allow long-form env aliases."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            aliases = {
                "development": Environments.DEV.value,
                "production": Environments.PROD.value,
            }
            return aliases.get(normalized, normalized)
        return value

    @field_validator(
        "error_rate_threshold",
        "latency_threshold_ms",
        "p95_threshold_ms",
        "memory_threshold",
        "error_rate_min_requests",
        "p95_min_requests",
        "slow_endpoint_min_requests",
        "memory_alert_warmup_seconds",
    )
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be greater than or equal to 0")
        return value

    @field_validator("error_rate_threshold", "memory_threshold", "sla_target")
    @classmethod
    def _percentage(cls, value: float) -> float:
        if not 0 <= value <= 100:
            raise ValueError("must be a percentage between 0 and 100")
        return value

    @field_validator(
        "max_stored_calls",
        "max_stored_metrics",
        "sample_interval_seconds",
        "persist_interval_seconds",
        "snapshot_max_calls",
        "snapshot_max_metrics",
        "dashboard_recent_calls_limit",
        "dashboard_slowest_limit",
        "dashboard_time_series_hours",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    @property
    def is_production(self) -> bool:
        return self.env.is_production()

    @property
    def is_development(self) -> bool:
        return self.env.is_development()


@lru_cache
def get_settings() -> Settings:
    return Settings()
