"""Monitoring read API routes."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from apimon.contracts import (
    ApiStats,
    DashboardData,
    ErrorGroup,
    ResolveAlertResponse,
    SlowEndpoint,
    SystemMetricsResponse,
    TimeSeriesPoint,
)
from apimon.models import ApiAlert, EndpointHealth
from apimon.service import ApiMonitor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/evaluation", tags=["monitoring"])
health_router = APIRouter(tags=["health"])


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def require_monitor(request: Request) -> ApiMonitor:
    """FastAPI dependency that returns the app's monitor or raises 503."""
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=503, detail="Monitoring not available")
    return monitor


@health_router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/dashboard", response_model=DashboardData)
async def get_dashboard(monitor: ApiMonitor = Depends(require_monitor)) -> DashboardData:
    """Full dashboard payload."""
    try:
        return monitor.get_dashboard_data()
    except Exception as exc:
        logger.exception("Error fetching dashboard data")
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data") from exc


@router.get("/stats", response_model=ApiStats)
async def get_stats(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    monitor: ApiMonitor = Depends(require_monitor),
) -> ApiStats:
    """API statistics, optionally limited to ``start_date``..``end_date``."""
    start_date, end_date = _as_utc(start_date), _as_utc(end_date)
    if start_date is not None and end_date is not None and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    try:
        if start_date is not None and end_date is not None:
            return monitor.get_api_stats(start_date, end_date)
        return monitor.get_api_stats()
    except Exception as exc:
        logger.exception("Error fetching API stats")
        raise HTTPException(status_code=500, detail="Failed to fetch API stats") from exc


@router.get("/endpoints", response_model=list[EndpointHealth])
async def get_endpoints(
    monitor: ApiMonitor = Depends(require_monitor),
) -> list[EndpointHealth]:
    try:
        return monitor.get_endpoint_health_summary()
    except Exception as exc:
        logger.exception("Error fetching endpoint health")
        raise HTTPException(status_code=500, detail="Failed to fetch endpoint health") from exc


@router.get("/alerts", response_model=list[ApiAlert])
async def get_alerts(monitor: ApiMonitor = Depends(require_monitor)) -> list[ApiAlert]:
    """Unresolved alerts, newest first."""
    try:
        return monitor.get_active_alerts()
    except Exception as exc:
        logger.exception("Error fetching alerts")
        raise HTTPException(status_code=500, detail="Failed to fetch alerts") from exc


@router.get("/alerts/all", response_model=list[ApiAlert])
async def get_all_alerts(monitor: ApiMonitor = Depends(require_monitor)) -> list[ApiAlert]:
    try:
        return monitor.get_all_alerts()
    except Exception as exc:
        logger.exception("Error fetching alerts")
        raise HTTPException(status_code=500, detail="Failed to fetch alerts") from exc


@router.post("/alerts/{alert_id}/resolve", response_model=ResolveAlertResponse)
async def resolve_alert(
    alert_id: str,
    monitor: ApiMonitor = Depends(require_monitor),
) -> ResolveAlertResponse:
    try:
        resolved = monitor.resolve_alert(alert_id)
    except Exception as exc:
        logger.exception("Error resolving alert %s", alert_id)
        raise HTTPException(status_code=500, detail="Failed to resolve alert") from exc

    if not resolved:
        raise HTTPException(status_code=404, detail="Alert not found or already resolved")
    return ResolveAlertResponse()


@router.get("/system", response_model=SystemMetricsResponse)
async def get_system_metrics(
    hours: float | None = Query(None, gt=0),
    monitor: ApiMonitor = Depends(require_monitor),
) -> SystemMetricsResponse:
    try:
        return SystemMetricsResponse(
            current=monitor.get_current_health(),
            history=monitor.get_system_metrics(hours),
        )
    except Exception as exc:
        logger.exception("Error fetching system metrics")
        raise HTTPException(status_code=500, detail="Failed to fetch system metrics") from exc


@router.get("/timeseries", response_model=list[TimeSeriesPoint])
async def get_time_series(
    hours: int = Query(24, gt=0),
    monitor: ApiMonitor = Depends(require_monitor),
) -> list[TimeSeriesPoint]:
    try:
        return monitor.get_time_series_data(hours)
    except Exception as exc:
        logger.exception("Error fetching time series data")
        raise HTTPException(status_code=500, detail="Failed to fetch time series data") from exc


@router.get("/slow-endpoints", response_model=list[SlowEndpoint])
async def get_slow_endpoints(
    threshold_ms: float = Query(1000.0, ge=0),
    monitor: ApiMonitor = Depends(require_monitor),
) -> list[SlowEndpoint]:
    try:
        return monitor.get_slow_endpoints(threshold_ms)
    except Exception as exc:
        logger.exception("Error fetching slow endpoints")
        raise HTTPException(status_code=500, detail="Failed to fetch slow endpoints") from exc


@router.get("/errors", response_model=list[ErrorGroup])
async def get_error_analysis(
    monitor: ApiMonitor = Depends(require_monitor),
) -> list[ErrorGroup]:
    try:
        return monitor.get_error_analysis()
    except Exception as exc:
        logger.exception("Error fetching error analysis")
        raise HTTPException(status_code=500, detail="Failed to fetch error analysis") from exc


__all__ = ["health_router", "require_monitor", "router"]
