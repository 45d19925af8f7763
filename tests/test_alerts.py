from datetime import timedelta

import pytest
from _fixtures.records import make_call
from _fixtures.time import utc_dt

from apimon.alerts import AlertEngine, AlertThresholds
from apimon.config import Settings
from apimon.models import (
    AlertSeverity,
    AlertType,
    EndpointHealth,
    MemoryUsage,
    SystemMetricsSample,
)

NOW = utc_dt(2026, 3, 1, 12)


def _health(**kwargs) -> EndpointHealth:
    return EndpointHealth(endpoint="/widgets", method="GET", **kwargs)


def _sample(percentage: float) -> SystemMetricsSample:
    return SystemMetricsSample(
        timestamp=NOW,
        memory_usage=MemoryUsage(used=1, total=100, percentage=percentage),
    )


def test_thresholds_reject_negative_values() -> None:
    with pytest.raises(ValueError, match="latency_ms"):
        AlertThresholds(latency_ms=-1)


def test_thresholds_from_settings() -> None:
    thresholds = AlertThresholds.from_settings(
        Settings(error_rate_threshold=2.5, p95_threshold_ms=750, persistence_enabled=False)
    )

    assert thresholds.error_rate == 2.5
    assert thresholds.p95_ms == 750
    assert thresholds.latency_ms == 2000.0


def test_error_rate_alert_needs_volume() -> None:
    engine = AlertEngine()
    call = make_call(status_code=500)

    assert engine.evaluate_call(call, _health(error_rate=50.0, total_requests=10), NOW) == []

    raised = engine.evaluate_call(call, _health(error_rate=50.0, total_requests=11), NOW)

    assert len(raised) == 1
    alert = raised[0]
    assert alert.type == AlertType.ERROR_RATE
    assert alert.severity == AlertSeverity.ERROR
    assert alert.endpoint == "/widgets"
    assert alert.method == "GET"
    assert alert.value == 50.0
    assert alert.threshold == 5.0
    assert alert.message == "High error rate detected for /widgets: 50.0%"


def test_latency_alert_for_single_slow_call() -> None:
    engine = AlertEngine()
    call = make_call(method="POST", endpoint="/upload", duration=3500.0)

    raised = engine.evaluate_call(call, _health(total_requests=1), NOW)

    assert len(raised) == 1
    alert = raised[0]
    assert alert.type == AlertType.LATENCY
    assert alert.severity == AlertSeverity.WARNING
    assert alert.value == 3500.0
    assert alert.threshold == 2000.0


def test_duration_equal_to_threshold_does_not_alert() -> None:
    engine = AlertEngine()

    assert engine.evaluate_call(make_call(duration=2000.0), _health(), NOW) == []


def test_p95_alert_requires_more_than_twenty_requests() -> None:
    engine = AlertEngine()
    call = make_call(duration=10.0)

    assert engine.evaluate_call(call, _health(p95_response_time=1500.0, total_requests=20), NOW) == []

    raised = engine.evaluate_call(
        call, _health(p95_response_time=1500.0, total_requests=21), NOW
    )
    assert [alert.type for alert in raised] == [AlertType.LATENCY]
    assert raised[0].message == "95th percentile response time high for /widgets: 1500ms"


def test_open_alert_is_not_duplicated() -> None:
    engine = AlertEngine()
    health = _health(error_rate=30.0, total_requests=20)

    engine.evaluate_call(make_call(status_code=500), health, NOW)
    engine.evaluate_call(make_call(status_code=500), health, NOW + timedelta(seconds=1))

    assert len(engine) == 1


def test_same_type_on_another_endpoint_is_separate() -> None:
    engine = AlertEngine()

    engine.evaluate_call(make_call(endpoint="/a", duration=5000.0), _health(), NOW)
    engine.evaluate_call(make_call(endpoint="/b", duration=5000.0), _health(), NOW)

    assert {alert.endpoint for alert in engine.active()} == {"/a", "/b"}


def test_memory_alert_and_auto_resolve() -> None:
    engine = AlertEngine()

    assert engine.evaluate_memory(_sample(85.0), NOW) is None
    alert = engine.evaluate_memory(_sample(91.5), NOW)
    assert alert is not None
    assert alert.message == "High memory usage detected: 91.5%"

    assert engine.auto_resolve(lambda endpoint, method: [], _sample(90.0), NOW) == []

    later = NOW + timedelta(minutes=1)
    resolved = engine.auto_resolve(lambda endpoint, method: [], _sample(50.0), later)

    assert resolved == [alert]
    assert alert.resolved
    assert alert.resolved_at == later
    assert engine.active() == []


def test_error_rate_alert_resolves_when_health_recovers() -> None:
    engine = AlertEngine()
    [alert] = engine.evaluate_call(
        make_call(status_code=500), _health(error_rate=30.0, total_requests=20), NOW
    )
    seen = []

    def health_for(endpoint, method):
        seen.append((endpoint, method))
        return [_health(error_rate=4.0, total_requests=100)]

    later = NOW + timedelta(minutes=2)
    engine.auto_resolve(health_for, None, later)

    assert seen == [("/widgets", "GET")]
    assert alert.resolved
    assert alert.resolved_at == later > alert.timestamp


def test_error_rate_alert_stays_open_without_health_entries() -> None:
    engine = AlertEngine()
    [alert] = engine.evaluate_call(
        make_call(status_code=500), _health(error_rate=30.0, total_requests=20), NOW
    )

    engine.auto_resolve(lambda endpoint, method: [], None, NOW)

    assert not alert.resolved


def test_latency_alerts_are_never_auto_resolved() -> None:
    engine = AlertEngine()
    [alert] = engine.evaluate_call(make_call(duration=9000.0), _health(), NOW)

    engine.auto_resolve(lambda endpoint, method: [_health()], _sample(10.0), NOW)

    assert not alert.resolved


def test_manual_resolve_is_idempotent() -> None:
    engine = AlertEngine()
    [alert] = engine.evaluate_call(make_call(duration=9000.0), _health(), NOW)

    resolved_at = NOW + timedelta(minutes=5)
    assert engine.resolve(alert.id, resolved_at) is True
    assert alert.resolved_at == resolved_at
    assert alert.resolved_at > alert.timestamp

    assert engine.resolve(alert.id, resolved_at + timedelta(minutes=5)) is False
    assert engine.resolve("missing", resolved_at) is False
    assert alert.resolved_at == resolved_at


def test_resolved_alert_allows_a_new_one() -> None:
    engine = AlertEngine()
    [first] = engine.evaluate_call(make_call(duration=9000.0), _health(), NOW)
    engine.resolve(first.id, NOW)

    later = NOW + timedelta(minutes=5)
    [second] = engine.evaluate_call(make_call(duration=9000.0), _health(), later)

    assert second.id != first.id
    assert engine.active() == [second]
    assert engine.all() == [second, first]
