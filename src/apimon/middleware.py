"""ASGI request monitoring middleware."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Message, Receive, Scope, Send

from apimon.interceptor import InFlightCall

if TYPE_CHECKING:
    from apimon.service import ApiMonitor

TRACE_ID_HEADER = "X-Request-ID"

# ContextVar so the trace ID is available to any code in the request path,
# including the logging filter below.
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


class TraceIDFilter(logging.Filter):
    """Logging filter that injects ``trace_id`` into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get()  # type: ignore[attr-defined]
        return True


class _ObservedResponse:
    """Sends the wrapped response and finishes the call however sending ends.

    Body bytes are counted once the server accepts them, so a client that
    disconnects mid-stream is recorded with the bytes actually sent.
    """

    def __init__(self, response: Response, call: InFlightCall, endpoint: str) -> None:
        self.response = response
        self.call = call
        self.endpoint = endpoint
        self.sent_bytes = 0

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        async def counting_send(message: Message) -> None:
            await send(message)
            if message["type"] == "http.response.body":
                self.sent_bytes += len(message.get("body", b""))

        try:
            await self.response(scope, receive, counting_send)
        finally:
            self.call.finish(self.response.status_code, self.sent_bytes, endpoint=self.endpoint)


class ApiMonitoringMiddleware(BaseHTTPMiddleware):
    """Observes every request/response cycle and feeds it to an ``ApiMonitor``.

    The request's ``X-Request-ID`` header is reused as trace ID when present;
    otherwise a new one is generated. It is set on ``request.state.trace_id``,
    stored in a ``ContextVar`` for logging, and echoed on the response.
    """

    def __init__(self, app: Any, monitor: ApiMonitor) -> None:
        super().__init__(app)
        self.monitor = monitor

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = request.headers.get(TRACE_ID_HEADER) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        trace_id_var.set(trace_id)

        call = self.monitor.interceptor.begin(
            method=request.method,
            url=_request_url(request),
            path=request.url.path,
            headers=request.headers,
            client_host=request.client.host if request.client else None,
            trace_id=trace_id,
        )

        try:
            response = await call_next(request)
        except Exception:
            call.finish(500, 0, endpoint=self._normalize_path(request))
            raise

        call.mark_first_byte()
        response.headers[TRACE_ID_HEADER] = trace_id

        return _ObservedResponse(  # type: ignore[return-value]
            response, call, self._normalize_path(request)
        )

    def _normalize_path(self, request: Request) -> str:
        """Prefer route templates (e.g. /users/{id}) to avoid key cardinality blow-up."""
        path = request.url.path
        if not self.monitor.settings.normalize_paths:
            return path

        route = request.scope.get("route")
        if route is None:
            return path

        route_template = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_template, str) and route_template.startswith("/"):
            return route_template
        return path


def _request_url(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


__all__ = [
    "ApiMonitoringMiddleware",
    "TRACE_ID_HEADER",
    "TraceIDFilter",
    "trace_id_var",
]
