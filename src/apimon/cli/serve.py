"""Run the instrumented app."""

from __future__ import annotations

import typer

from apimon.cli._console import error_panel, setup_logging


def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Serve the monitored app and its dashboard API with uvicorn.
    """
    setup_logging(verbose=verbose)

    from pydantic import ValidationError

    from apimon.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        error_panel(str(e), title="Invalid configuration")
        raise typer.Exit(1) from e

    import uvicorn

    try:
        uvicorn.run(
            "apimon.main:build_app",
            factory=True,
            host=host or settings.host,
            port=port or settings.port,
            reload=reload,
            log_config=None,
        )
    except Exception as e:
        error_panel(str(e), title="Server start failed")
        raise typer.Exit(1) from e
