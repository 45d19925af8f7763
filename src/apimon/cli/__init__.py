"""apimon CLI."""

import typer

from apimon.cli._console import console
from apimon.cli.snapshot import inspect_cmd
from apimon.cli.serve import serve

app = typer.Typer(
    name="apimon",
    help="In-process API monitoring.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from apimon import __version__

        console.print(f"[bold]apimon[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """API monitoring for FastAPI services."""


app.command()(serve)
app.command("inspect")(inspect_cmd)
