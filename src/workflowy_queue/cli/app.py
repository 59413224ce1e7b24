"""Main CLI application for Workflowy Queue."""

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from workflowy_queue import __version__
from workflowy_queue.cli import ops as ops_cmd
from workflowy_queue.cli.common import console
from workflowy_queue.config import get_settings
from workflowy_queue.logging import setup_logging

app = typer.Typer(
    name="wfqueue",
    help="Rate-limited batch operations for the Workflowy API.",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"wfqueue version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """Workflowy Queue - batch node operations under the API rate limit."""
    settings = get_settings()
    log_config = settings.logging

    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


@app.command()
def config() -> None:
    """Show effective queue, rate limit and retry settings."""
    settings = get_settings()

    table = Table(title="Effective Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("workflowy_base_url", settings.workflowy_base_url)
    table.add_row("workflowy_api_key", "set" if settings.workflowy_api_key else "[red]not set[/red]")
    for section in ("queue", "rate_limit", "retry"):
        for key, value in getattr(settings, section).model_dump().items():
            table.add_row(f"{section}.{key}", str(value))

    console.print(table)


app.add_typer(ops_cmd.app, name="ops")


if __name__ == "__main__":
    app()
