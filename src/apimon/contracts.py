"""Dashboard and read-API contract payloads."""

from pydantic import BaseModel, Field

from apimon.models import ApiAlert, CallRecord, EndpointHealth, MemoryUsage, SystemMetricsSample


class Overview(BaseModel):
    """Headline numbers for the whole service."""

    uptime: float  # milliseconds since monitoring started
    total_requests: int
    requests_per_minute: int
    average_response_time: float
    error_rate: float
    success_rate: float
    memory_usage: MemoryUsage | None = None


class TimeSeriesPoint(BaseModel):
    """One 5-minute bucket of traffic."""

    timestamp: str
    requests_per_minute: float
    average_response_time: float
    error_rate: float


class SlowestEndpoint(BaseModel):
    endpoint: str
    method: str
    average_response_time: float
    total_requests: int


class EndpointErrors(BaseModel):
    endpoint: str
    error_count: int
    error_rate: float


class MethodShare(BaseModel):
    method: str
    count: int
    percentage: float


class DashboardCharts(BaseModel):
    time_series: list[TimeSeriesPoint] = Field(default_factory=list)
    slowest_endpoints: list[SlowestEndpoint] = Field(default_factory=list)
    errors_by_endpoint: list[EndpointErrors] = Field(default_factory=list)
    requests_by_method: list[MethodShare] = Field(default_factory=list)


class SlaMetrics(BaseModel):
    """Observed reliability against the service-level objective."""

    slo_target: float
    actual_uptime: float
    breach_count: int
    mttr: float  # mean time to recovery, milliseconds
    mtbf: float  # mean time between failures, milliseconds


class DashboardData(BaseModel):
    """Full payload for the monitoring dashboard."""

    overview: Overview
    endpoints: list[EndpointHealth]
    recent_calls: list[CallRecord]
    alerts: list[ApiAlert]
    charts: DashboardCharts
    sla: SlaMetrics


class EndpointStats(BaseModel):
    calls: int
    avg_response_time: float
    error_rate: float


class RecentError(BaseModel):
    timestamp: str
    method: str
    url: str
    status_code: int | None = None
    error: str | None = None
    duration: float


class ApiStats(BaseModel):
    """Aggregate statistics over an optional time range."""

    total_calls: int = 0
    success_rate: float = 0.0
    average_response_time: float = 0.0
    calls_per_minute: float = 0.0
    error_rate: float = 0.0
    by_endpoint: dict[str, EndpointStats] = Field(default_factory=dict)
    by_status_code: dict[str, int] = Field(default_factory=dict)
    recent_errors: list[RecentError] = Field(default_factory=list)


class SlowEndpoint(BaseModel):
    endpoint: str
    average_response_time: float
    call_count: int
    slow_call_percentage: float


class ErrorGroup(BaseModel):
    error: str
    count: int
    percentage: float
    endpoints: list[str]


class SystemMetricsResponse(BaseModel):
    current: SystemMetricsSample | None = None
    history: list[SystemMetricsSample] = Field(default_factory=list)


class ResolveAlertResponse(BaseModel):
    success: bool = True
    message: str = "Alert resolved"


__all__ = [
    "ApiStats",
    "DashboardCharts",
    "DashboardData",
    "EndpointErrors",
    "EndpointStats",
    "ErrorGroup",
    "MethodShare",
    "Overview",
    "RecentError",
    "ResolveAlertResponse",
    "SlaMetrics",
    "SlowEndpoint",
    "SlowestEndpoint",
    "SystemMetricsResponse",
    "TimeSeriesPoint",
]
