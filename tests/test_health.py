from datetime import timedelta

import pytest
from _fixtures.records import make_call
from _fixtures.time import utc_dt

from apimon.health import EndpointHealthAggregator, percentile
from apimon.models import EndpointHealth
from apimon.store import CallStore

NOW = utc_dt(2026, 3, 1, 12)


def _feed(store: CallStore, health: EndpointHealthAggregator, *calls):
    entry = None
    for call in calls:
        store.append(call)
        entry = health.on_call(call, NOW)
    return entry


def test_percentile_uses_ceil_rank() -> None:
    durations = [100.0] * 24 + [5000.0]

    assert percentile(durations, 95) == 100.0
    assert percentile(durations, 99) == 5000.0


@pytest.mark.parametrize(
    ("values", "pct", "expected"),
    [
        ([], 95, 0.0),
        ([42.0], 95, 42.0),
        ([3.0, 1.0, 2.0], 0, 1.0),
        ([3.0, 1.0, 2.0], 100, 3.0),
    ],
)
def test_percentile_edges(values, pct, expected) -> None:
    assert percentile(values, pct) == expected


def test_p95_ignores_single_outlier() -> None:
    store = CallStore()
    health = EndpointHealthAggregator(store)
    calls = [make_call(endpoint="/items", duration=100.0) for _ in range(24)]
    calls.append(make_call(endpoint="/items", duration=5000.0))

    entry = _feed(store, health, *calls)

    assert entry.p95_response_time == 100.0
    assert entry.p99_response_time >= entry.p95_response_time


def test_error_rate_and_totals() -> None:
    store = CallStore()
    health = EndpointHealthAggregator(store)
    calls = [make_call() for _ in range(15)] + [make_call(status_code=500) for _ in range(5)]

    entry = _feed(store, health, *calls)

    assert entry.total_requests == 20
    assert entry.error_rate == pytest.approx(25.0)
    assert entry.success_rate + entry.error_rate == pytest.approx(100.0)
    assert entry.key == "GET:/widgets"
    assert health.get("GET:/widgets") is entry


def test_last_error_only_set_by_failures() -> None:
    store = CallStore()
    health = EndpointHealthAggregator(store)
    failed = make_call(status_code=502, timestamp=NOW - timedelta(seconds=5))

    _feed(store, health, failed)
    entry = _feed(store, health, make_call())

    assert entry.last_error == "HTTP 502"
    assert entry.last_error_time == failed.timestamp


def test_total_requests_survives_eviction() -> None:
    store = CallStore(2)
    health = EndpointHealthAggregator(store)

    entry = _feed(
        store,
        health,
        make_call(status_code=500, duration=900.0),
        make_call(duration=100.0),
        make_call(duration=300.0),
    )

    # The failed call was evicted, so only the last two shape the rates.
    assert entry.total_requests == 3
    assert entry.success_rate == 100.0
    assert entry.average_response_time == pytest.approx(200.0)
    assert entry.last_error == "HTTP 500"


def test_new_entry_defaults_are_optimistic() -> None:
    entry = EndpointHealth(endpoint="/fresh", method="GET")

    assert entry.success_rate == 100.0
    assert entry.error_rate == 0.0
    assert entry.total_requests == 0


def test_requests_per_minute_counts_last_sixty_seconds() -> None:
    store = CallStore()
    health = EndpointHealthAggregator(store)

    entry = _feed(
        store,
        health,
        make_call(timestamp=NOW - timedelta(seconds=90)),
        make_call(timestamp=NOW - timedelta(seconds=60)),
        make_call(timestamp=NOW - timedelta(seconds=10)),
        make_call(timestamp=NOW),
    )

    assert entry.requests_per_minute == 2


def test_summary_is_busiest_first_and_matching_spans_methods() -> None:
    store = CallStore()
    health = EndpointHealthAggregator(store)
    _feed(store, health, make_call(method="POST"))
    _feed(store, health, *[make_call(method="GET") for _ in range(3)])

    assert [entry.method for entry in health.summary()] == ["GET", "POST"]
    assert {entry.method for entry in health.matching("/widgets")} == {"GET", "POST"}
    assert "POST:/widgets" in health
    assert len(health) == 2
