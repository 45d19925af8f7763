"""Monitoring records: observed calls, endpoint health, alerts and system samples."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def endpoint_key(method: str, endpoint: str) -> str:
    """Key identifying one (method, endpoint) pair, e.g. ``GET:/users/{user_id}``."""
    return f"{method.upper()}:{endpoint}"


class AlertSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertType(StrEnum):
    UPTIME = "uptime"
    LATENCY = "latency"
    ERROR_RATE = "error_rate"
    SSL_EXPIRY = "ssl_expiry"
    RATE_LIMIT = "rate_limit"
    MEMORY = "memory"
    CPU = "cpu"


class CallTimings(BaseModel):
    """Timing breakdown of one call in milliseconds."""

    model_config = ConfigDict(frozen=True)

    ttfb: float
    download: float
    total: float


class CallRecord(BaseModel):
    """One observed request/response cycle."""

    model_config = ConfigDict(frozen=True)

    id: str
    method: str
    url: str
    status_code: int | None = None
    duration: float
    timestamp: datetime
    user_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    request_size: int = 0
    response_size: int = 0
    success: bool
    error: str | None = None
    endpoint: str
    operation: str
    trace_id: str | None = None
    timings: CallTimings | None = None

    @property
    def key(self) -> str:
        return endpoint_key(self.method, self.endpoint)


class EndpointHealth(BaseModel):
    """Rolling statistics for one (method, endpoint) pair."""

    endpoint: str
    method: str
    total_requests: int = 0
    success_rate: float = 100.0
    average_response_time: float = 0.0
    error_rate: float = 0.0
    last_error: str | None = None
    last_error_time: datetime | None = None
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    requests_per_minute: int = 0

    @property
    def key(self) -> str:
        return endpoint_key(self.method, self.endpoint)


class ApiAlert(BaseModel):
    """A threshold breach with a resolution lifecycle."""

    id: str
    severity: AlertSeverity
    type: AlertType
    message: str
    endpoint: str | None = None
    method: str | None = None
    value: float | None = None
    threshold: float | None = None
    timestamp: datetime
    resolved: bool = False
    resolved_at: datetime | None = None


class MemoryUsage(BaseModel):
    """Process memory reading in bytes."""

    model_config = ConfigDict(frozen=True)

    used: int
    total: int
    percentage: float


class SystemMetricsSample(BaseModel):
    """Per-minute process snapshot."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    memory_usage: MemoryUsage
    api_calls_per_minute: int = 0
    error_rate: float = 0.0
    average_response_time: float = 0.0
    active_operations: int = 0


class MonitorSnapshot(BaseModel):
    """Serialized monitor state written to the snapshot file."""

    model_config = ConfigDict(populate_by_name=True)

    calls: list[CallRecord] = Field(default_factory=list)
    alerts: list[ApiAlert] = Field(default_factory=list)
    endpoint_health: list[tuple[str, EndpointHealth]] = Field(
        default_factory=list, alias="endpointHealth"
    )
    system_metrics: list[SystemMetricsSample] = Field(
        default_factory=list, alias="systemMetrics"
    )
    start_time: float = Field(alias="startTime")  # epoch milliseconds


__all__ = [
    "AlertSeverity",
    "AlertType",
    "ApiAlert",
    "CallRecord",
    "CallTimings",
    "EndpointHealth",
    "MemoryUsage",
    "MonitorSnapshot",
    "SystemMetricsSample",
    "endpoint_key",
]
