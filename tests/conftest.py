from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from _fixtures.records import MemoryStub
from _fixtures.time import FakeClock, utc_dt

from apimon.config import Settings
from apimon.persistence import SnapshotStore
from apimon.service import ApiMonitor


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utc_dt(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def memory() -> MemoryStub:
    return MemoryStub()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        persistence_enabled=False,
        snapshot_path=str(tmp_path / "data" / "api-monitoring.json"),
    )


@pytest.fixture
def monitor_factory(
    clock: FakeClock, memory: MemoryStub, settings: Settings
) -> Callable[..., ApiMonitor]:
    def _factory(**overrides: object) -> ApiMonitor:
        merged = settings.model_copy(update=overrides) if overrides else settings
        return ApiMonitor(
            merged,
            clock=clock,
            memory_reader=memory,
            snapshot_store=SnapshotStore(merged.snapshot_path),
        )

    return _factory


@pytest.fixture
def monitor(monitor_factory: Callable[..., ApiMonitor]) -> ApiMonitor:
    return monitor_factory()
