"""In-process API monitoring for FastAPI/Starlette services."""

from apimon._version import __version__
from apimon.alerts import AlertEngine, AlertThresholds
from apimon.config import Settings, get_settings
from apimon.middleware import ApiMonitoringMiddleware
from apimon.models import (
    AlertSeverity,
    AlertType,
    ApiAlert,
    CallRecord,
    EndpointHealth,
    SystemMetricsSample,
)
from apimon.service import ApiMonitor

__all__ = [
    "AlertEngine",
    "AlertSeverity",
    "AlertThresholds",
    "AlertType",
    "ApiAlert",
    "ApiMonitor",
    "ApiMonitoringMiddleware",
    "CallRecord",
    "EndpointHealth",
    "Settings",
    "SystemMetricsSample",
    "__version__",
    "get_settings",
]
