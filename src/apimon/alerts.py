"""Threshold-based alerting with de-duplication and auto-resolution."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from apimon.config import Settings
from apimon.models import (
    AlertSeverity,
    AlertType,
    ApiAlert,
    CallRecord,
    EndpointHealth,
    SystemMetricsSample,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertThresholds:
    """Breach limits evaluated by the alert engine."""

    error_rate: float = 5.0
    latency_ms: float = 2000.0
    p95_ms: float = 1000.0
    memory: float = 85.0
    error_rate_min_requests: int = 10
    p95_min_requests: int = 20

    def __post_init__(self) -> None:
        for name in (
            "error_rate",
            "latency_ms",
            "p95_ms",
            "memory",
            "error_rate_min_requests",
            "p95_min_requests",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"Alert threshold '{name}' must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> AlertThresholds:
        return cls(
            error_rate=settings.error_rate_threshold,
            latency_ms=settings.latency_threshold_ms,
            p95_ms=settings.p95_threshold_ms,
            memory=settings.memory_threshold,
            error_rate_min_requests=settings.error_rate_min_requests,
            p95_min_requests=settings.p95_min_requests,
        )


class AlertEngine:
    """Raises alerts for threshold breaches and keeps their history.

    At most one unresolved alert exists per (type, endpoint); a breach that
    matches an open alert is dropped. Alerts are never deleted.
    """

    def __init__(self, thresholds: AlertThresholds | None = None) -> None:
        self.thresholds = thresholds or AlertThresholds()
        self._alerts: list[ApiAlert] = []

    def __len__(self) -> int:
        return len(self._alerts)

    def active(self) -> list[ApiAlert]:
        """Unresolved alerts, newest first."""
        unresolved = [alert for alert in self._alerts if not alert.resolved]
        return sorted(unresolved, key=lambda alert: alert.timestamp, reverse=True)

    def all(self) -> list[ApiAlert]:
        """Every alert ever raised, newest first."""
        return sorted(self._alerts, key=lambda alert: alert.timestamp, reverse=True)

    def get(self, alert_id: str) -> ApiAlert | None:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    def restore(self, alerts: Iterable[ApiAlert]) -> None:
        self._alerts = list(alerts)

    def find_unresolved(self, type: AlertType, endpoint: str | None) -> ApiAlert | None:  # noqa: A002
        for alert in self._alerts:
            if not alert.resolved and alert.type == type and alert.endpoint == endpoint:
                return alert
        return None

    def raise_alert(
        self,
        *,
        severity: AlertSeverity,
        type: AlertType,  # noqa: A002
        message: str,
        now: datetime,
        endpoint: str | None = None,
        method: str | None = None,
        value: float | None = None,
        threshold: float | None = None,
    ) -> ApiAlert | None:
        """Record a new alert unless an equivalent one is still open."""
        if self.find_unresolved(type, endpoint) is not None:
            return None

        alert = ApiAlert(
            id=uuid.uuid4().hex,
            severity=severity,
            type=type,
            message=message,
            endpoint=endpoint,
            method=method,
            value=value,
            threshold=threshold,
            timestamp=now,
        )
        self._alerts.append(alert)
        logger.warning(
            "API alert: %s",
            alert.message,
            extra={"alert_id": alert.id, "alert_type": alert.type.value, "endpoint": endpoint},
        )
        return alert

    def evaluate_call(
        self, record: CallRecord, health: EndpointHealth, now: datetime
    ) -> list[ApiAlert]:
        """Check one call and its freshly updated endpoint health."""
        limits = self.thresholds
        raised: list[ApiAlert | None] = []

        if (
            health.error_rate > limits.error_rate
            and health.total_requests > limits.error_rate_min_requests
        ):
            raised.append(
                self.raise_alert(
                    severity=AlertSeverity.ERROR,
                    type=AlertType.ERROR_RATE,
                    message=(
                        f"High error rate detected for {record.endpoint}: "
                        f"{health.error_rate:.1f}%"
                    ),
                    now=now,
                    endpoint=record.endpoint,
                    method=record.method,
                    value=health.error_rate,
                    threshold=limits.error_rate,
                )
            )

        if record.duration > limits.latency_ms:
            raised.append(
                self.raise_alert(
                    severity=AlertSeverity.WARNING,
                    type=AlertType.LATENCY,
                    message=(
                        f"High response time detected for {record.endpoint}: "
                        f"{record.duration:.0f}ms"
                    ),
                    now=now,
                    endpoint=record.endpoint,
                    method=record.method,
                    value=record.duration,
                    threshold=limits.latency_ms,
                )
            )

        if (
            health.p95_response_time > limits.p95_ms
            and health.total_requests > limits.p95_min_requests
        ):
            raised.append(
                self.raise_alert(
                    severity=AlertSeverity.WARNING,
                    type=AlertType.LATENCY,
                    message=(
                        f"95th percentile response time high for {record.endpoint}: "
                        f"{health.p95_response_time:.0f}ms"
                    ),
                    now=now,
                    endpoint=record.endpoint,
                    method=record.method,
                    value=health.p95_response_time,
                    threshold=limits.p95_ms,
                )
            )

        return [alert for alert in raised if alert is not None]

    def evaluate_memory(self, sample: SystemMetricsSample, now: datetime) -> ApiAlert | None:
        percentage = sample.memory_usage.percentage
        if percentage <= self.thresholds.memory:
            return None
        return self.raise_alert(
            severity=AlertSeverity.WARNING,
            type=AlertType.MEMORY,
            message=f"High memory usage detected: {percentage:.1f}%",
            now=now,
            value=percentage,
            threshold=self.thresholds.memory,
        )

    def auto_resolve(
        self,
        health_for: Callable[[str, str | None], list[EndpointHealth]],
        latest_sample: SystemMetricsSample | None,
        now: datetime,
    ) -> list[ApiAlert]:
        """Resolve open alerts whose triggering condition no longer holds.

        ``health_for(endpoint, method)`` returns the health entries to check for
        an error-rate alert. Latency alerts are left for manual resolution.
        """
        resolved: list[ApiAlert] = []
        for alert in self._alerts:
            if alert.resolved:
                continue

            should_resolve = False
            if alert.type == AlertType.ERROR_RATE and alert.endpoint:
                entries = health_for(alert.endpoint, alert.method)
                if entries and all(
                    health.error_rate <= self.thresholds.error_rate for health in entries
                ):
                    should_resolve = True
            elif alert.type == AlertType.MEMORY:
                if (
                    latest_sample is not None
                    and latest_sample.memory_usage.percentage <= self.thresholds.memory
                ):
                    should_resolve = True

            if should_resolve:
                alert.resolved = True
                alert.resolved_at = now
                resolved.append(alert)
                logger.info(
                    "Auto-resolved alert: %s",
                    alert.message,
                    extra={"alert_id": alert.id, "alert_type": alert.type.value},
                )

        return resolved

    def resolve(self, alert_id: str, now: datetime) -> bool:
        """Manually resolve an open alert. Unknown or closed ids return False."""
        alert = self.get(alert_id)
        if alert is None or alert.resolved:
            return False
        alert.resolved = True
        alert.resolved_at = now
        logger.info("Resolved alert %s: %s", alert.id, alert.message)
        return True


__all__ = ["AlertEngine", "AlertThresholds"]
