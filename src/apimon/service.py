"""API monitoring service.

``ApiMonitor`` owns the call store, endpoint health, alert engine, metrics
sampler and snapshot persistence for one process. It is built by the
application's composition root and passed to the middleware and the read API;
there is no global instance.

Mutations (recording a call, a sampler tick, resolving an alert, restoring a
snapshot) are serialised by one lock so a call's append, health update and
alert check form a single unit relative to other calls.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC, datetime, timedelta

from apimon.alerts import AlertEngine, AlertThresholds
from apimon.config import Settings, get_settings
from apimon.contracts import (
    ApiStats,
    DashboardData,
    ErrorGroup,
    SlaMetrics,
    SlowEndpoint,
    TimeSeriesPoint,
)
from apimon.dashboard import DashboardFacade, DashboardLimits
from apimon.health import EndpointHealthAggregator
from apimon.interceptor import CallInterceptor, Clock
from apimon.models import (
    ApiAlert,
    CallRecord,
    EndpointHealth,
    MonitorSnapshot,
    SystemMetricsSample,
    endpoint_key,
)
from apimon.periodic import PeriodicTask
from apimon.persistence import SnapshotStore
from apimon.sampler import MemoryReader, SystemMetricsSampler, read_process_memory
from apimon.store import CallStore

logger = logging.getLogger(__name__)

HEALTH_LOG_INTERVAL = timedelta(minutes=15)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ApiMonitor:
    """In-process API telemetry pipeline with a ``start()``/``stop()`` lifecycle."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: Clock = _utcnow,
        memory_reader: MemoryReader = read_process_memory,
        snapshot_store: SnapshotStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock
        self._lock = threading.RLock()

        self.started_at = clock()
        self._memory_alerts_armed_at = self.started_at + timedelta(
            seconds=self.settings.memory_alert_warmup_seconds
        )
        self._last_health_log: datetime | None = None

        self.store = CallStore(self.settings.max_stored_calls)
        self.health = EndpointHealthAggregator(self.store)
        self.alerts = AlertEngine(AlertThresholds.from_settings(self.settings))
        self.interceptor = CallInterceptor(
            self.record_call,
            clock=clock,
            user_id_header=self.settings.user_id_header,
        )
        self.sampler = SystemMetricsSampler(
            self.store,
            capacity=self.settings.max_stored_metrics,
            memory_reader=memory_reader,
            active_operations=lambda: len(self.interceptor.operations),
        )
        self.dashboard = DashboardFacade(
            self.store,
            self.health,
            self.alerts,
            self.sampler,
            DashboardLimits(
                recent_calls=self.settings.dashboard_recent_calls_limit,
                slowest_endpoints=self.settings.dashboard_slowest_limit,
                time_series_hours=self.settings.dashboard_time_series_hours,
                slow_endpoint_min_requests=self.settings.slow_endpoint_min_requests,
                sla_target=self.settings.sla_target,
            ),
        )
        self.snapshots = snapshot_store or SnapshotStore(self.settings.snapshot_path)

        self._sampler_task = PeriodicTask(
            "metrics-sampler", self._tick_async, self.settings.sample_interval_seconds
        )
        self._persistence_task = PeriodicTask(
            "snapshot-writer", self.save, self.settings.persist_interval_seconds
        )

    def now(self) -> datetime:
        return self._clock()

    # Lifecycle

    async def start(self) -> None:
        """Restore the last snapshot and start the background loops."""
        if self.settings.persistence_enabled:
            self.load()
            await self._persistence_task.start()
        await self._sampler_task.start()
        logger.info(
            "API monitor started (max_calls=%d, sample_interval=%.0fs, persistence=%s)",
            self.settings.max_stored_calls,
            self.settings.sample_interval_seconds,
            self.settings.persistence_enabled,
        )

    async def stop(self) -> None:
        """Stop the background loops and write a final snapshot."""
        await self._sampler_task.stop()
        if self.settings.persistence_enabled:
            await self._persistence_task.stop()
            await self.save()
        logger.info("API monitor stopped")

    # Write path

    def record_call(self, record: CallRecord) -> None:
        """Store ``record`` and update health and alerts. Never raises."""
        try:
            with self._lock:
                now = self._clock()
                self.store.append(record)
                health = self.health.on_call(record, now)
                self.alerts.evaluate_call(record, health, now)
        except Exception:
            logger.exception("Failed to process call record %s", record.id)
            return

        context = {
            "method": record.method,
            "endpoint": record.endpoint,
            "status_code": record.status_code,
            "duration_ms": round(record.duration, 1),
        }
        if record.success:
            logger.info(
                "API call completed %s %s status=%s duration=%.1fms",
                record.method,
                record.url,
                record.status_code,
                record.duration,
                extra=context,
            )
        else:
            logger.warning(
                "API call failed %s %s status=%s duration=%.1fms error=%s",
                record.method,
                record.url,
                record.status_code,
                record.duration,
                record.error,
                extra=context,
            )

    def tick(self) -> SystemMetricsSample:
        """Take a metrics sample, check memory and sweep resolvable alerts."""
        with self._lock:
            now = self._clock()
            sample = self.sampler.sample(now)
            if now >= self._memory_alerts_armed_at:
                self.alerts.evaluate_memory(sample, now)
            self.alerts.auto_resolve(self._health_for_alert, sample, now)
            log_health = (
                self._last_health_log is None
                or now - self._last_health_log >= HEALTH_LOG_INTERVAL
            )
            if log_health:
                self._last_health_log = now

        if log_health:
            logger.info(
                "System health check memory=%.1f%% calls_per_minute=%d error_rate=%.1f%% "
                "avg_response_time=%.0fms active_operations=%d",
                sample.memory_usage.percentage,
                sample.api_calls_per_minute,
                sample.error_rate,
                sample.average_response_time,
                sample.active_operations,
            )
        return sample

    async def _tick_async(self) -> None:
        self.tick()

    def _health_for_alert(self, endpoint: str, method: str | None) -> list[EndpointHealth]:
        if method:
            health = self.health.get(endpoint_key(method, endpoint))
            return [health] if health is not None else []
        return self.health.matching(endpoint)

    def resolve_alert(self, alert_id: str) -> bool:
        """Manually resolve an alert. Returns False for unknown or closed alerts."""
        with self._lock:
            resolved = self.alerts.resolve(alert_id, self._clock())
        if resolved and self.settings.persistence_enabled:
            self._persistence_task.wake()
        return resolved

    # Persistence

    def build_snapshot(self) -> MonitorSnapshot:
        with self._lock:
            return MonitorSnapshot(
                calls=self.store.tail(self.settings.snapshot_max_calls),
                alerts=[alert.model_copy() for alert in self.alerts.all()],
                endpoint_health=[
                    (key, health.model_copy()) for key, health in self.health.entries()
                ],
                system_metrics=self.sampler.tail(self.settings.snapshot_max_metrics),
                start_time=self.started_at.timestamp() * 1000,
            )

    def restore(self, snapshot: MonitorSnapshot) -> None:
        with self._lock:
            self.store.replace(snapshot.calls)
            self.alerts.restore(sorted(snapshot.alerts, key=lambda alert: alert.timestamp))
            self.health.restore(snapshot.endpoint_health)
            self.sampler.restore(snapshot.system_metrics)
            self.started_at = datetime.fromtimestamp(snapshot.start_time / 1000, UTC)

    def load(self) -> bool:
        """Restore state from the snapshot file. Returns False when starting fresh."""
        snapshot = self.snapshots.read()
        if snapshot is None:
            return False
        self.restore(snapshot)
        logger.info(
            "Restored monitoring snapshot (%d calls, %d alerts, %d endpoints)",
            len(snapshot.calls),
            len(snapshot.alerts),
            len(snapshot.endpoint_health),
        )
        return True

    async def save(self) -> bool:
        """Write a snapshot without blocking the event loop. Failures are logged."""
        snapshot = self.build_snapshot()
        try:
            await asyncio.to_thread(self.snapshots.write, snapshot)
        except Exception as exc:
            logger.warning("Failed to save API monitoring data: %s", exc)
            return False
        return True

    # Read API

    def get_dashboard_data(self) -> DashboardData:
        with self._lock:
            return self.dashboard.dashboard(started_at=self.started_at, now=self._clock())

    def get_active_alerts(self) -> list[ApiAlert]:
        with self._lock:
            return [alert.model_copy() for alert in self.alerts.active()]

    def get_all_alerts(self) -> list[ApiAlert]:
        with self._lock:
            return [alert.model_copy() for alert in self.alerts.all()]

    def get_api_stats(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> ApiStats:
        with self._lock:
            return self.dashboard.api_stats(start=start, end=end)

    def get_slow_endpoints(self, threshold_ms: float = 1000.0) -> list[SlowEndpoint]:
        with self._lock:
            return self.dashboard.slow_endpoints(threshold_ms)

    def get_error_analysis(self) -> list[ErrorGroup]:
        with self._lock:
            return self.dashboard.error_analysis()

    def get_endpoint_health_summary(self) -> list[EndpointHealth]:
        with self._lock:
            return [health.model_copy() for health in self.health.summary()]

    def get_recent_calls(self, limit: int = 100) -> list[CallRecord]:
        with self._lock:
            return self.store.recent(limit)

    def get_time_series_data(self, hours: int = 24) -> list[TimeSeriesPoint]:
        with self._lock:
            return self.dashboard.time_series(now=self._clock(), hours=hours)

    def get_system_metrics(self, hours: float | None = None) -> list[SystemMetricsSample]:
        with self._lock:
            return self.dashboard.system_metrics(now=self._clock(), hours=hours)

    def get_current_health(self) -> SystemMetricsSample | None:
        with self._lock:
            return self.sampler.latest()

    def get_sla_metrics(self) -> SlaMetrics:
        with self._lock:
            return self.dashboard.sla(started_at=self.started_at, now=self._clock())


__all__ = ["ApiMonitor"]
