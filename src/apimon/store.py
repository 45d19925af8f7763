"""Bounded, insertion-ordered buffer of recent call records."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime

from apimon.models import CallRecord

DEFAULT_MAX_STORED_CALLS = 10_000


class CallStore:
    """FIFO ring buffer of ``CallRecord`` objects.

    Appending beyond ``capacity`` silently evicts the oldest records. Lookups are
    linear scans over at most ``capacity`` records.
    """

    def __init__(self, capacity: int = DEFAULT_MAX_STORED_CALLS) -> None:
        if capacity < 1:
            raise ValueError("CallStore capacity must be at least 1")
        self._calls: deque[CallRecord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._calls.maxlen or 0

    def __len__(self) -> int:
        return len(self._calls)

    def __iter__(self) -> Iterator[CallRecord]:
        return iter(self._calls)

    def append(self, record: CallRecord) -> None:
        self._calls.append(record)

    def recent(self, n: int) -> list[CallRecord]:
        """Return the last ``n`` records, most recent first."""
        if n <= 0:
            return []
        out: list[CallRecord] = []
        for record in reversed(self._calls):
            if len(out) >= n:
                break
            out.append(record)
        return out

    def tail(self, n: int) -> list[CallRecord]:
        """Return the last ``n`` records in insertion order."""
        if n <= 0:
            return []
        return list(self._calls)[-n:]

    def filter(
        self,
        predicate: Callable[[CallRecord], bool] | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CallRecord]:
        """Return records matching ``predicate`` within the inclusive time range."""
        out: list[CallRecord] = []
        for record in self._calls:
            if start is not None and record.timestamp < start:
                continue
            if end is not None and record.timestamp > end:
                continue
            if predicate is not None and not predicate(record):
                continue
            out.append(record)
        return out

    def since(self, cutoff: datetime, *, inclusive: bool = True) -> list[CallRecord]:
        if inclusive:
            return [record for record in self._calls if record.timestamp >= cutoff]
        return [record for record in self._calls if record.timestamp > cutoff]

    def for_key(self, method: str, endpoint: str) -> list[CallRecord]:
        method = method.upper()
        return [
            record
            for record in self._calls
            if record.method == method and record.endpoint == endpoint
        ]

    def snapshot(self) -> list[CallRecord]:
        return list(self._calls)

    def replace(self, records: Iterable[CallRecord]) -> None:
        """Drop current contents and load ``records`` (oldest first)."""
        self._calls.clear()
        self._calls.extend(records)
