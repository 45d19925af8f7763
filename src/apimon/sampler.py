"""Per-minute process metrics history."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

import psutil

from apimon.models import MemoryUsage, SystemMetricsSample
from apimon.store import CallStore

DEFAULT_MAX_STORED_METRICS = 1440
SAMPLE_WINDOW = timedelta(seconds=60)

MemoryReader = Callable[[], MemoryUsage]


def read_process_memory() -> MemoryUsage:
    """Resident memory of this process against total physical memory."""
    used = psutil.Process().memory_info().rss
    total = psutil.virtual_memory().total
    percentage = (used / total) * 100 if total else 0.0
    return MemoryUsage(used=used, total=total, percentage=percentage)


class SystemMetricsSampler:
    """Builds ``SystemMetricsSample`` snapshots and keeps a bounded history."""

    def __init__(
        self,
        store: CallStore,
        *,
        capacity: int = DEFAULT_MAX_STORED_METRICS,
        memory_reader: MemoryReader = read_process_memory,
        active_operations: Callable[[], int] = lambda: 0,
    ) -> None:
        if capacity < 1:
            raise ValueError("Metrics history capacity must be at least 1")
        self._store = store
        self._memory_reader = memory_reader
        self._active_operations = active_operations
        self._history: deque[SystemMetricsSample] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._history)

    def read_memory(self) -> MemoryUsage:
        return self._memory_reader()

    def sample(self, now: datetime) -> SystemMetricsSample:
        """Take one snapshot and append it to the history."""
        recent = self._store.since(now - SAMPLE_WINDOW)
        failed = sum(1 for call in recent if not call.success)
        average = sum(call.duration for call in recent) / len(recent) if recent else 0.0

        sample = SystemMetricsSample(
            timestamp=now,
            memory_usage=self._memory_reader(),
            api_calls_per_minute=len(recent),
            error_rate=(failed / len(recent)) * 100 if recent else 0.0,
            average_response_time=average,
            active_operations=self._active_operations(),
        )
        self._history.append(sample)
        return sample

    def latest(self) -> SystemMetricsSample | None:
        return self._history[-1] if self._history else None

    def history(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[SystemMetricsSample]:
        return [
            sample
            for sample in self._history
            if (start is None or sample.timestamp >= start)
            and (end is None or sample.timestamp <= end)
        ]

    def tail(self, n: int) -> list[SystemMetricsSample]:
        if n <= 0:
            return []
        return list(self._history)[-n:]

    def restore(self, samples: Iterable[SystemMetricsSample]) -> None:
        self._history.clear()
        self._history.extend(samples)


__all__ = ["MemoryReader", "SystemMetricsSampler", "read_process_memory"]
