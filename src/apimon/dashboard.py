"""Read-only aggregations over the monitor's stores, computed on demand."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from apimon.alerts import AlertEngine
from apimon.contracts import (
    ApiStats,
    DashboardCharts,
    DashboardData,
    EndpointErrors,
    EndpointStats,
    ErrorGroup,
    MethodShare,
    Overview,
    RecentError,
    SlaMetrics,
    SlowEndpoint,
    SlowestEndpoint,
    TimeSeriesPoint,
)
from apimon.health import EndpointHealthAggregator
from apimon.models import AlertType, CallRecord, SystemMetricsSample
from apimon.sampler import SystemMetricsSampler
from apimon.store import CallStore

BUCKET_MINUTES = 5
UNKNOWN = "unknown"
BREACH_ALERT_TYPES = frozenset({AlertType.ERROR_RATE, AlertType.LATENCY})


def _ms(delta: timedelta) -> float:
    return delta.total_seconds() * 1000


def _bucket_start(ts: datetime) -> datetime:
    interval_ms = BUCKET_MINUTES * 60 * 1000
    epoch_ms = int(ts.timestamp() * 1000)
    return datetime.fromtimestamp((epoch_ms // interval_ms) * interval_ms / 1000, UTC)


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass
class DashboardLimits:
    recent_calls: int = 50
    slowest_endpoints: int = 10
    time_series_hours: int = 24
    slow_endpoint_min_requests: int = 5
    sla_target: float = 99.9


class DashboardFacade:
    """Composes dashboard views from the call store, health, alerts and samples."""

    def __init__(
        self,
        store: CallStore,
        health: EndpointHealthAggregator,
        alerts: AlertEngine,
        sampler: SystemMetricsSampler,
        limits: DashboardLimits | None = None,
    ) -> None:
        self._store = store
        self._health = health
        self._alerts = alerts
        self._sampler = sampler
        self.limits = limits or DashboardLimits()

    def overview(self, *, started_at: datetime, now: datetime) -> Overview:
        calls = self._store.snapshot()
        total = len(calls)
        failed = sum(1 for call in calls if not call.success)
        error_rate = (failed / total) * 100 if total else 0.0

        latest = self._sampler.latest()
        memory = latest.memory_usage if latest is not None else self._sampler.read_memory()

        return Overview(
            uptime=_ms(now - started_at),
            total_requests=total,
            requests_per_minute=len(self._store.since(now - timedelta(minutes=1), inclusive=False)),
            average_response_time=_average([call.duration for call in calls]),
            error_rate=error_rate,
            success_rate=100.0 - error_rate,
            memory_usage=memory,
        )

    def time_series(self, *, now: datetime, hours: int | None = None) -> list[TimeSeriesPoint]:
        hours = self.limits.time_series_hours if hours is None else hours
        relevant = self._store.since(now - timedelta(hours=hours), inclusive=False)

        buckets: dict[datetime, list[CallRecord]] = {}
        for call in relevant:
            buckets.setdefault(_bucket_start(call.timestamp), []).append(call)

        points = []
        for start in sorted(buckets):
            calls = buckets[start]
            failed = sum(1 for call in calls if not call.success)
            points.append(
                TimeSeriesPoint(
                    timestamp=start.isoformat(),
                    requests_per_minute=len(calls) / BUCKET_MINUTES,
                    average_response_time=_average([call.duration for call in calls]),
                    error_rate=(failed / len(calls)) * 100,
                )
            )
        return points

    def slowest_endpoints(self, limit: int | None = None) -> list[SlowestEndpoint]:
        limit = self.limits.slowest_endpoints if limit is None else limit
        eligible = [
            health
            for health in self._health.summary()
            if health.total_requests > self.limits.slow_endpoint_min_requests
        ]
        eligible.sort(key=lambda health: health.average_response_time, reverse=True)
        return [
            SlowestEndpoint(
                endpoint=health.endpoint,
                method=health.method,
                average_response_time=health.average_response_time,
                total_requests=health.total_requests,
            )
            for health in eligible[:limit]
        ]

    def errors_by_endpoint(self) -> list[EndpointErrors]:
        totals: Counter[str] = Counter()
        errors: Counter[str] = Counter()
        for call in self._store:
            endpoint = call.endpoint or UNKNOWN
            totals[endpoint] += 1
            if not call.success:
                errors[endpoint] += 1

        out = [
            EndpointErrors(
                endpoint=endpoint,
                error_count=errors[endpoint],
                error_rate=(errors[endpoint] / total) * 100,
            )
            for endpoint, total in totals.items()
            if errors[endpoint] > 0
        ]
        out.sort(key=lambda item: item.error_count, reverse=True)
        return out

    def requests_by_method(self) -> list[MethodShare]:
        counts = Counter(call.method for call in self._store)
        total = sum(counts.values())
        return [
            MethodShare(method=method, count=count, percentage=(count / total) * 100)
            for method, count in counts.most_common()
        ]

    def sla(self, *, started_at: datetime, now: datetime) -> SlaMetrics:
        calls = self._store.snapshot()
        total = len(calls)
        failed = sum(1 for call in calls if not call.success)
        actual_uptime = ((total - failed) / total) * 100 if total else 100.0

        breaches = [alert for alert in self._alerts.all() if alert.type in BREACH_ALERT_TYPES]
        recoveries = [
            _ms(alert.resolved_at - alert.timestamp)
            for alert in breaches
            if alert.resolved and alert.resolved_at is not None
        ]

        return SlaMetrics(
            slo_target=self.limits.sla_target,
            actual_uptime=actual_uptime,
            breach_count=len(breaches),
            mttr=_average(recoveries),
            mtbf=_ms(now - started_at) / max(len(breaches), 1),
        )

    def dashboard(self, *, started_at: datetime, now: datetime) -> DashboardData:
        return DashboardData(
            overview=self.overview(started_at=started_at, now=now),
            endpoints=[health.model_copy() for health in self._health.summary()],
            recent_calls=self._store.recent(self.limits.recent_calls),
            alerts=[alert.model_copy() for alert in self._alerts.active()],
            charts=DashboardCharts(
                time_series=self.time_series(now=now),
                slowest_endpoints=self.slowest_endpoints(),
                errors_by_endpoint=self.errors_by_endpoint(),
                requests_by_method=self.requests_by_method(),
            ),
            sla=self.sla(started_at=started_at, now=now),
        )

    def api_stats(
        self, *, start: datetime | None = None, end: datetime | None = None
    ) -> ApiStats:
        ranged = start is not None and end is not None
        calls = self._store.filter(start=start, end=end) if ranged else self._store.snapshot()
        if not calls:
            return ApiStats()

        total = len(calls)
        successful = sum(1 for call in calls if call.success)

        grouped: dict[str, list[CallRecord]] = {}
        for call in calls:
            grouped.setdefault(call.endpoint or UNKNOWN, []).append(call)
        by_endpoint = {
            endpoint: EndpointStats(
                calls=len(group),
                avg_response_time=_average([call.duration for call in group]),
                error_rate=(sum(1 for call in group if not call.success) / len(group)) * 100,
            )
            for endpoint, group in grouped.items()
        }

        by_status_code = Counter(
            str(call.status_code) if call.status_code is not None else UNKNOWN
            for call in calls
        )

        recent_errors = [
            RecentError(
                timestamp=call.timestamp.isoformat(),
                method=call.method,
                url=call.url,
                status_code=call.status_code,
                error=call.error,
                duration=call.duration,
            )
            for call in [call for call in calls if not call.success][-10:]
        ]

        if ranged:
            window_minutes = _ms(end - start) / 60_000  # type: ignore[operator]
            if window_minutes <= 0:
                window_minutes = 1.0
        else:
            window_minutes = 60.0

        return ApiStats(
            total_calls=total,
            success_rate=(successful / total) * 100,
            average_response_time=_average([call.duration for call in calls]),
            calls_per_minute=total / window_minutes,
            error_rate=((total - successful) / total) * 100,
            by_endpoint=by_endpoint,
            by_status_code=dict(by_status_code),
            recent_errors=recent_errors,
        )

    def slow_endpoints(self, threshold_ms: float = 1000.0) -> list[SlowEndpoint]:
        grouped: dict[str, list[float]] = {}
        for call in self._store:
            grouped.setdefault(call.endpoint or UNKNOWN, []).append(call.duration)

        out = []
        for endpoint, durations in grouped.items():
            average = _average(durations)
            if average <= threshold_ms:
                continue
            slow = sum(1 for duration in durations if duration > threshold_ms)
            out.append(
                SlowEndpoint(
                    endpoint=endpoint,
                    average_response_time=average,
                    call_count=len(durations),
                    slow_call_percentage=(slow / len(durations)) * 100,
                )
            )
        out.sort(key=lambda item: item.average_response_time, reverse=True)
        return out

    def error_analysis(self) -> list[ErrorGroup]:
        failed = [call for call in self._store if not call.success]
        if not failed:
            return []

        counts: Counter[str] = Counter()
        endpoints: dict[str, list[str]] = {}
        for call in failed:
            error = call.error or "Unknown error"
            counts[error] += 1
            seen = endpoints.setdefault(error, [])
            endpoint = call.endpoint or UNKNOWN
            if endpoint not in seen:
                seen.append(endpoint)

        return [
            ErrorGroup(
                error=error,
                count=count,
                percentage=(count / len(failed)) * 100,
                endpoints=endpoints[error],
            )
            for error, count in counts.most_common()
        ]

    def system_metrics(
        self, *, now: datetime, hours: float | None = None
    ) -> list[SystemMetricsSample]:
        if hours is None:
            return self._sampler.history()
        return self._sampler.history(start=now - timedelta(hours=hours), end=now)


__all__ = ["DashboardFacade", "DashboardLimits"]
