"""Summarise a monitoring snapshot file."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from apimon.cli._console import console, dim, error_panel, header, warning
from apimon.persistence import SnapshotStore


def inspect_cmd(
    path: Path | None = typer.Argument(
        None,
        help="Snapshot file (defaults to APIMON_SNAPSHOT_PATH)",
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Max endpoints to list"),
) -> None:
    """
    Show endpoint health and open alerts from a snapshot file.
    """
    if path is None:
        from apimon.config import get_settings

        path = Path(get_settings().snapshot_path)

    snapshot = SnapshotStore(path).read()
    if snapshot is None:
        error_panel(f"No readable snapshot at {path}", title="Nothing to inspect")
        raise typer.Exit(1)

    header(
        f"Snapshot {path}",
        subtitle=(
            f"{len(snapshot.calls)} calls, {len(snapshot.alerts)} alerts, "
            f"{len(snapshot.system_metrics)} system samples"
        ),
    )

    entries = sorted(
        (health for _key, health in snapshot.endpoint_health),
        key=lambda health: health.total_requests,
        reverse=True,
    )
    table = Table(show_edge=False, pad_edge=False)
    table.add_column("Method")
    table.add_column("Endpoint")
    table.add_column("Requests", justify="right")
    table.add_column("Success %", justify="right")
    table.add_column("Avg ms", justify="right")
    table.add_column("p95 ms", justify="right")
    table.add_column("p99 ms", justify="right")
    for health in entries[:limit]:
        table.add_row(
            health.method,
            health.endpoint,
            str(health.total_requests),
            f"{health.success_rate:.1f}",
            f"{health.average_response_time:.0f}",
            f"{health.p95_response_time:.0f}",
            f"{health.p99_response_time:.0f}",
        )
    console.print(table)

    open_alerts = [alert for alert in snapshot.alerts if not alert.resolved]
    console.print()
    if not open_alerts:
        dim("No open alerts")
        return
    for alert in sorted(open_alerts, key=lambda alert: alert.timestamp, reverse=True):
        warning(f"{alert.severity.value}: {escape(alert.message)} ({alert.timestamp.isoformat()})")
