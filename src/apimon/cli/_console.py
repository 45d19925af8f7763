"""Console output for the apimon CLI."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

NO_COLOR = os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes")

console = Console(highlight=False, force_terminal=not NO_COLOR, no_color=NO_COLOR)


def header(title: str, subtitle: str | None = None) -> None:
    console.print()
    console.print(f"[bold]{title}[/bold]")
    if subtitle:
        console.print(f"[dim]{subtitle}[/dim]")
    console.print()


def warning(msg: str) -> None:
    console.print(f"  [yellow]![/yellow] {msg}")


def dim(msg: str) -> None:
    console.print(f"  [dim]{msg}[/dim]")


def error_panel(msg: str, *, title: str = "Failed") -> None:
    """Red boxed error with ``title`` on top and ``msg`` dimmed below."""
    body = Text.assemble(("✗ ", "red bold"), (title, "red"), "\n\n", (msg, "dim"))
    console.print(Panel.fit(body, border_style="red dim", padding=(0, 1)))


def setup_logging(verbose: bool = False) -> None:
    """Route apimon and uvicorn logs through rich."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=console,
        show_time=verbose,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)

    logging.getLogger("apimon").setLevel(level)
    # Per-request lines come from the monitor itself.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
