"""Local JSON snapshot of the monitor's bounded in-memory state.

This is a best-effort restart aid, not a durable log: anything recorded since
the last successful write is lost on a crash.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from apimon.models import MonitorSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes a ``MonitorSnapshot`` at a fixed path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def write(self, snapshot: MonitorSnapshot) -> None:
        """Write ``snapshot`` atomically, creating parent directories."""
        payload = snapshot.model_dump_json(by_alias=True, indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read(self) -> MonitorSnapshot | None:
        """Load the snapshot, or ``None`` when it is missing or unusable."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.info("No monitoring snapshot at %s, starting fresh", self.path)
            return None
        except OSError as exc:
            logger.warning("Could not read monitoring snapshot %s: %s", self.path, exc)
            return None

        # Bytes go straight to the validator so bad UTF-8 is a ValidationError too.
        try:
            return MonitorSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Ignoring corrupt monitoring snapshot %s (%d errors)",
                self.path,
                exc.error_count(),
            )
            return None


__all__ = ["SnapshotStore"]
