"""Background loop that runs a coroutine on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``callback`` every ``interval_seconds`` off the request path.

    ``wake()`` runs the callback early without waiting for the interval to
    elapse. Failures inside the callback are logged and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[None]],
        interval_seconds: float,
    ) -> None:
        self.name = name
        self._callback = callback
        self._interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.debug("%s started (interval=%.0fs)", self.name, self._interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.debug("%s stopped", self.name)

    def wake(self) -> None:
        self._wake_event.set()

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._wake_event.wait(),
                    timeout=self._interval_seconds,
                )
            except TimeoutError:
                pass
            self._wake_event.clear()

            if self._stop_event.is_set():
                break

            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pragma: no cover - best effort background loop
                logger.warning("%s tick failed: %s", self.name, exc)
