"""Framework-neutral request capture.

``CallInterceptor.begin`` is called when a request arrives and returns an
``InFlightCall``; ``InFlightCall.finish`` is called once the response is done
and turns the observation into a ``CallRecord`` for the sink. ``finish`` only
acts the first time it is called, and nothing it does can raise into the
request that is being observed.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from apimon.models import CallRecord, CallTimings

logger = logging.getLogger(__name__)

CallSink = Callable[[CallRecord], object]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_size(value: str | None) -> int:
    if not value:
        return 0
    try:
        return max(int(value), 0)
    except ValueError:
        return 0


@dataclass
class ActiveOperation:
    """A request that has started but not finished."""

    call_id: str
    trace_id: str
    operation: str
    started_at: datetime
    user_id: str | None = None
    metadata: dict[str, str | None] = field(default_factory=dict)


class ActiveOperations:
    """Registry of in-flight operations keyed by call id."""

    def __init__(self) -> None:
        self._operations: dict[str, ActiveOperation] = {}

    def __len__(self) -> int:
        return len(self._operations)

    def start(self, operation: ActiveOperation) -> None:
        self._operations[operation.call_id] = operation

    def end(self, call_id: str) -> ActiveOperation | None:
        return self._operations.pop(call_id, None)

    def snapshot(self) -> list[ActiveOperation]:
        return list(self._operations.values())


class InFlightCall:
    """Observation of one request between arrival and response completion."""

    def __init__(
        self,
        *,
        interceptor: CallInterceptor,
        call_id: str,
        trace_id: str,
        method: str,
        url: str,
        path: str,
        started_at: datetime,
        started_perf: float,
        user_id: str | None,
        user_agent: str | None,
        ip_address: str | None,
        request_size: int,
    ) -> None:
        self._interceptor = interceptor
        self.call_id = call_id
        self.trace_id = trace_id
        self.method = method
        self.url = url
        self.path = path
        self.started_at = started_at
        self._started_perf = started_perf
        self._first_byte_perf: float | None = None
        self.user_id = user_id
        self.user_agent = user_agent
        self.ip_address = ip_address
        self.request_size = request_size
        self.finished = False
        self.record: CallRecord | None = None

    def mark_first_byte(self) -> None:
        """Note the moment the response started; used for the ttfb timing."""
        if self._first_byte_perf is None:
            self._first_byte_perf = time.perf_counter()

    def finish(
        self,
        status_code: int | None,
        response_size: int = 0,
        *,
        endpoint: str | None = None,
    ) -> CallRecord | None:
        """Build the record and hand it to the sink. Later calls are no-ops."""
        if self.finished:
            return None
        self.finished = True

        try:
            self.record = self._build_record(status_code, response_size, endpoint)
        except Exception:
            logger.exception("Failed to build call record for %s %s", self.method, self.url)
            self._interceptor.operations.end(self.call_id)
            return None

        self._interceptor.operations.end(self.call_id)
        self._interceptor.deliver(self.record)
        return self.record

    def _build_record(
        self, status_code: int | None, response_size: int, endpoint: str | None
    ) -> CallRecord:
        end_perf = time.perf_counter()
        duration = (end_perf - self._started_perf) * 1000
        first_byte = self._first_byte_perf if self._first_byte_perf is not None else end_perf
        ttfb = (first_byte - self._started_perf) * 1000

        success = status_code is not None and status_code < 400
        return CallRecord(
            id=self.call_id,
            method=self.method,
            url=self.url,
            status_code=status_code,
            duration=duration,
            timestamp=self.started_at,
            user_id=self.user_id,
            user_agent=self.user_agent,
            ip_address=self.ip_address,
            request_size=self.request_size,
            response_size=max(response_size, 0),
            success=success,
            error=None if success else f"HTTP {status_code}",
            endpoint=endpoint or self.path,
            operation=f"{self.method} {self.path}",
            trace_id=self.trace_id,
            timings=CallTimings(ttfb=ttfb, download=max(duration - ttfb, 0.0), total=duration),
        )


class CallInterceptor:
    """Creates in-flight observations and forwards finished records to ``sink``."""

    def __init__(
        self,
        sink: CallSink,
        *,
        clock: Clock = _utcnow,
        user_id_header: str = "user-id",
    ) -> None:
        self._sink = sink
        self._clock = clock
        self.user_id_header = user_id_header.lower()
        self.operations = ActiveOperations()

    def begin(
        self,
        *,
        method: str,
        url: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        client_host: str | None = None,
        trace_id: str | None = None,
    ) -> InFlightCall:
        headers = {key.lower(): value for key, value in (headers or {}).items()}
        method = method.upper()
        call_id = uuid.uuid4().hex
        trace_id = trace_id or uuid.uuid4().hex
        started_at = self._clock()
        user_id = headers.get(self.user_id_header)
        user_agent = headers.get("user-agent")

        self.operations.start(
            ActiveOperation(
                call_id=call_id,
                trace_id=trace_id,
                operation=f"api_{method}_{path}",
                started_at=started_at,
                user_id=user_id,
                metadata={
                    "method": method,
                    "url": url,
                    "user_agent": user_agent,
                    "ip": client_host,
                },
            )
        )

        return InFlightCall(
            interceptor=self,
            call_id=call_id,
            trace_id=trace_id,
            method=method,
            url=url,
            path=path,
            started_at=started_at,
            started_perf=time.perf_counter(),
            user_id=user_id,
            user_agent=user_agent,
            ip_address=client_host,
            request_size=_parse_size(headers.get("content-length")),
        )

    def deliver(self, record: CallRecord) -> None:
        try:
            self._sink(record)
        except Exception:
            # Monitoring must never break the request it observes.
            logger.exception("Failed to process call record %s", record.id)


__all__ = ["ActiveOperation", "ActiveOperations", "CallInterceptor", "InFlightCall"]
