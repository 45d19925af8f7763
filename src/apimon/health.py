"""Per-endpoint rolling health statistics derived from the call store."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from apimon.models import CallRecord, EndpointHealth
from apimon.store import CallStore

REQUESTS_PER_MINUTE_WINDOW = timedelta(seconds=60)


def percentile(values: Sequence[float], pct: float) -> float:
    """Exact percentile over ``values`` using the ceil-rank method.

    The index into the ascending sort is ``ceil(pct / 100 * N) - 1`` clamped to
    ``[0, N - 1]``. An empty input yields 0.
    """
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((pct / 100) * len(ordered)) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return float(ordered[index])


class EndpointHealthAggregator:
    """Maintains one ``EndpointHealth`` per ``METHOD:endpoint`` key.

    Every update recomputes rates, averages and percentiles from the stored
    calls for that key, so evicted calls drop out of the statistics on their
    own. ``total_requests`` is a lifetime counter and is not affected by
    eviction.
    """

    def __init__(self, store: CallStore) -> None:
        self._store = store
        self._health: dict[str, EndpointHealth] = {}

    def __len__(self) -> int:
        return len(self._health)

    def __contains__(self, key: object) -> bool:
        return key in self._health

    def get(self, key: str) -> EndpointHealth | None:
        return self._health.get(key)

    def matching(self, endpoint: str) -> list[EndpointHealth]:
        """All entries for ``endpoint`` regardless of method."""
        return [health for health in self._health.values() if health.endpoint == endpoint]

    def entries(self) -> list[tuple[str, EndpointHealth]]:
        return list(self._health.items())

    def summary(self) -> list[EndpointHealth]:
        """All entries, busiest first."""
        return sorted(
            self._health.values(), key=lambda health: health.total_requests, reverse=True
        )

    def restore(self, pairs: Iterable[tuple[str, EndpointHealth]]) -> None:
        self._health = {key: health for key, health in pairs}

    def on_call(self, record: CallRecord, now: datetime) -> EndpointHealth:
        """Fold ``record`` (already appended to the store) into its entry."""
        key = record.key
        health = self._health.get(key)
        if health is None:
            # Starts optimistic; the recompute below replaces it with real data.
            health = EndpointHealth(endpoint=record.endpoint, method=record.method)
            self._health[key] = health

        health.total_requests += 1
        self._recompute(health, now)

        if not record.success:
            health.last_error = record.error
            health.last_error_time = record.timestamp

        return health

    def _recompute(self, health: EndpointHealth, now: datetime) -> None:
        calls = self._store.for_key(health.method, health.endpoint)
        durations = [call.duration for call in calls]

        if calls:
            successful = sum(1 for call in calls if call.success)
            health.success_rate = (successful / len(calls)) * 100
            health.average_response_time = sum(durations) / len(durations)
        else:
            health.success_rate = 100.0
            health.average_response_time = 0.0

        health.error_rate = 100.0 - health.success_rate
        health.p95_response_time = percentile(durations, 95)
        health.p99_response_time = percentile(durations, 99)

        cutoff = now - REQUESTS_PER_MINUTE_WINDOW
        health.requests_per_minute = sum(1 for call in calls if call.timestamp > cutoff)


__all__ = ["EndpointHealthAggregator", "percentile"]
