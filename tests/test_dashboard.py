from datetime import timedelta

import pytest
from _fixtures.records import make_call
from _fixtures.time import utc_dt

START = utc_dt(2026, 3, 1, 12)


def _record(monitor, **kwargs) -> None:
    kwargs.setdefault("timestamp", monitor.now())
    monitor.record_call(make_call(**kwargs))


def test_empty_dashboard(monitor) -> None:
    data = monitor.get_dashboard_data()

    assert data.overview.total_requests == 0
    assert data.overview.error_rate == 0.0
    assert data.overview.success_rate == 100.0
    assert data.overview.memory_usage.percentage == 40.0
    assert data.endpoints == []
    assert data.recent_calls == []
    assert data.charts.time_series == []
    assert data.sla.actual_uptime == 100.0
    assert data.sla.breach_count == 0


def test_overview(monitor, clock) -> None:
    _record(monitor, timestamp=START - timedelta(minutes=5), duration=100.0)
    _record(monitor, duration=300.0, status_code=500)
    clock.advance(seconds=30)

    overview = monitor.get_dashboard_data().overview

    assert overview.uptime == 30_000
    assert overview.total_requests == 2
    assert overview.requests_per_minute == 1
    assert overview.average_response_time == pytest.approx(200.0)
    assert overview.error_rate == pytest.approx(50.0)
    assert overview.success_rate == pytest.approx(50.0)


def test_time_series_buckets_by_five_minutes(monitor, clock) -> None:
    clock.advance(minutes=20)
    _record(monitor, timestamp=START + timedelta(minutes=1), duration=100.0)
    _record(monitor, timestamp=START + timedelta(minutes=4), duration=300.0, status_code=500)
    _record(monitor, timestamp=START + timedelta(minutes=7), duration=50.0)
    _record(monitor, timestamp=START - timedelta(hours=25))

    points = monitor.get_time_series_data(hours=24)

    assert [p.timestamp for p in points] == [
        "2026-03-01T12:00:00+00:00",
        "2026-03-01T12:05:00+00:00",
    ]
    assert points[0].requests_per_minute == pytest.approx(0.4)
    assert points[0].average_response_time == pytest.approx(200.0)
    assert points[0].error_rate == pytest.approx(50.0)
    assert points[1].requests_per_minute == pytest.approx(0.2)


def test_slowest_endpoints_require_more_than_five_requests(monitor) -> None:
    for _ in range(6):
        _record(monitor, endpoint="/busy", duration=400.0)
        _record(monitor, endpoint="/fast", duration=10.0)
    for _ in range(5):
        _record(monitor, endpoint="/rare", duration=1500.0)

    slowest = monitor.get_dashboard_data().charts.slowest_endpoints

    assert [item.endpoint for item in slowest] == ["/busy", "/fast"]
    assert slowest[0].total_requests == 6


def test_errors_and_methods(monitor) -> None:
    _record(monitor, endpoint="/a", status_code=500)
    _record(monitor, endpoint="/a", status_code=404)
    _record(monitor, endpoint="/a")
    _record(monitor, endpoint="/b", method="POST", status_code=500)
    _record(monitor, endpoint="/c", method="POST")

    charts = monitor.get_dashboard_data().charts

    assert [(e.endpoint, e.error_count) for e in charts.errors_by_endpoint] == [
        ("/a", 2),
        ("/b", 1),
    ]
    assert charts.errors_by_endpoint[0].error_rate == pytest.approx(200 / 3)
    assert [(m.method, m.count) for m in charts.requests_by_method] == [("GET", 3), ("POST", 2)]
    assert charts.requests_by_method[0].percentage == pytest.approx(60.0)


def test_recent_calls_capped_and_newest_first(monitor_factory) -> None:
    monitor = monitor_factory(dashboard_recent_calls_limit=3)
    for index in range(5):
        _record(monitor, url=f"/widgets?page={index}")

    recent = monitor.get_dashboard_data().recent_calls

    assert [call.url for call in recent] == [
        "/widgets?page=4",
        "/widgets?page=3",
        "/widgets?page=2",
    ]


def test_sla_metrics(monitor, clock) -> None:
    _record(monitor, duration=5000.0)
    for _ in range(3):
        _record(monitor)
    [alert] = monitor.get_active_alerts()
    clock.advance(minutes=2)
    monitor.resolve_alert(alert.id)
    clock.advance(minutes=2)

    sla = monitor.get_sla_metrics()

    assert sla.slo_target == 99.9
    assert sla.actual_uptime == 100.0
    assert sla.breach_count == 1
    assert sla.mttr == 120_000
    assert sla.mtbf == 240_000


def test_api_stats_all_time(monitor) -> None:
    _record(monitor, endpoint="/a", duration=100.0)
    _record(monitor, endpoint="/a", duration=300.0, status_code=500)
    _record(monitor, endpoint="/b", status_code=None)

    stats = monitor.get_api_stats()

    assert stats.total_calls == 3
    assert stats.calls_per_minute == pytest.approx(3 / 60)
    assert stats.success_rate == pytest.approx(100 / 3)
    assert stats.by_endpoint["/a"].calls == 2
    assert stats.by_endpoint["/a"].avg_response_time == pytest.approx(200.0)
    assert stats.by_endpoint["/a"].error_rate == pytest.approx(50.0)
    assert stats.by_status_code == {"200": 1, "500": 1, "unknown": 1}
    assert [error.status_code for error in stats.recent_errors] == [500, None]


def test_api_stats_range(monitor) -> None:
    _record(monitor, timestamp=START - timedelta(hours=2))
    _record(monitor, timestamp=START - timedelta(minutes=10))
    _record(monitor, timestamp=START)

    stats = monitor.get_api_stats(START - timedelta(minutes=30), START)

    assert stats.total_calls == 2
    assert stats.calls_per_minute == pytest.approx(2 / 30)


def test_api_stats_empty_and_zero_width_range(monitor) -> None:
    assert monitor.get_api_stats().total_calls == 0

    _record(monitor)
    stats = monitor.get_api_stats(START, START)

    assert stats.total_calls == 1
    assert stats.calls_per_minute == 1.0


def test_recent_errors_capped_at_ten(monitor) -> None:
    for index in range(12):
        _record(monitor, status_code=500, url=f"/widgets/{index}")

    errors = monitor.get_api_stats().recent_errors

    assert len(errors) == 10
    assert errors[-1].url == "/widgets/11"


def test_slow_endpoints(monitor) -> None:
    _record(monitor, endpoint="/slow", duration=1500.0)
    _record(monitor, endpoint="/slow", duration=900.0)
    _record(monitor, endpoint="/quick", duration=50.0)

    [slow] = monitor.get_slow_endpoints(1000)

    assert slow.endpoint == "/slow"
    assert slow.call_count == 2
    assert slow.average_response_time == pytest.approx(1200.0)
    assert slow.slow_call_percentage == pytest.approx(50.0)
    assert monitor.get_slow_endpoints(2000) == []


def test_error_analysis(monitor) -> None:
    assert monitor.get_error_analysis() == []

    _record(monitor, endpoint="/a", status_code=500)
    _record(monitor, endpoint="/b", status_code=500)
    _record(monitor, endpoint="/a", status_code=404)
    _record(monitor, endpoint="/a")

    groups = monitor.get_error_analysis()

    assert [(g.error, g.count) for g in groups] == [("HTTP 500", 2), ("HTTP 404", 1)]
    assert groups[0].endpoints == ["/a", "/b"]
    assert groups[0].percentage == pytest.approx(200 / 3)


def test_system_metrics_window(monitor, clock) -> None:
    monitor.tick()
    clock.advance(hours=2)
    monitor.tick()

    assert len(monitor.get_system_metrics()) == 2
    assert len(monitor.get_system_metrics(hours=1)) == 1
