"""Operation commands: apply operation files through the request queue."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.markup import escape
from rich.table import Table

from workflowy_queue.bulk import BulkResult, OperationSpec, apply_operations, load_operations
from workflowy_queue.cli.common import (
    DryRunOption,
    OutputFormat,
    OutputFormatOption,
    console,
    run_async_command,
)
from workflowy_queue.client import WorkflowyClient
from workflowy_queue.config import QueueConfig, get_settings
from workflowy_queue.exceptions import WorkflowyQueueError
from workflowy_queue.queue import ROUTES, RequestQueue, TokenBucket

app = typer.Typer(help="Queue Workflowy node operations")


@app.command("apply")
def apply_file(
    path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            readable=True,
            help="JSON array or JSON Lines file of {kind, params} operations",
        ),
    ],
    dry_run: DryRunOption = False,
    output_format: OutputFormatOption = OutputFormat.TEXT,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-c", min=1, help="Override max concurrent batches"),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", "-b", min=1, help="Override max operations per batch"),
    ] = None,
) -> None:
    """Apply a file of node operations through the rate-limited queue.

    Examples:
        wfqueue ops apply changes.json
        wfqueue ops apply changes.jsonl --dry-run
        wfqueue ops apply changes.json --concurrency 1 --batch-size 1
        wfqueue -v ops apply changes.json --format json
    """
    try:
        specs = load_operations(path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    if not specs:
        console.print("[yellow]No operations found.[/yellow]")
        return

    if dry_run:
        _print_dry_run(specs, output_format)
        return

    settings = get_settings()
    overrides: dict[str, Any] = {}
    if concurrency is not None:
        overrides["max_concurrency"] = concurrency
    if batch_size is not None:
        overrides["max_batch_size"] = batch_size
    config = QueueConfig(**{**settings.queue.model_dump(), **overrides})

    async def _apply() -> BulkResult:
        async with WorkflowyClient() as client:
            queue = RequestQueue(
                executor=client.request,
                config=config,
                token_bucket=TokenBucket.from_config(settings.rate_limit),
            )
            return await apply_operations(queue, specs)

    result = run_async_command(_apply(), error_prefix="Apply failed")

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _print_result(result)

    if not result.all_succeeded:
        raise typer.Exit(1)


@app.command("routes")
def show_routes() -> None:
    """Show how each operation kind maps onto the Workflowy API."""
    table = Table(title="Operation Routes")
    table.add_column("Kind", style="cyan")
    table.add_column("Method")
    table.add_column("Endpoint")
    table.add_column("Body")

    for kind, route in ROUTES.items():
        table.add_row(
            kind.value,
            route.method,
            route.endpoint,
            "params" if route.sends_body else "-",
        )

    console.print(table)


def _print_dry_run(specs: list[OperationSpec], output_format: OutputFormat) -> None:
    rows: list[dict[str, Any]] = []
    for index, spec in enumerate(specs):
        try:
            request = spec.describe()
            rows.append(
                {
                    "index": index,
                    "kind": spec.kind,
                    "method": request.method,
                    "endpoint": request.endpoint,
                    "body": request.body,
                }
            )
        except WorkflowyQueueError as e:
            rows.append({"index": index, "kind": spec.kind, "error": str(e)})

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps(rows))
        return

    table = Table(title="[dim](dry-run)[/dim] Resolved Requests")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Request")
    table.add_column("Body")

    for row in rows:
        if "error" in row:
            table.add_row(
                str(row["index"]), escape(row["kind"]), f"[red]{escape(row['error'])}[/red]", ""
            )
        else:
            body = json.dumps(row["body"]) if row["body"] is not None else "-"
            table.add_row(
                str(row["index"]),
                escape(row["kind"]),
                escape(f"{row['method']} {row['endpoint']}"),
                escape(body),
            )

    console.print(table)


def _print_result(result: BulkResult) -> None:
    table = Table(title="Applied Operations")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for outcome in result.outcomes:
        if outcome.success:
            detail = json.dumps(outcome.result, default=str) if outcome.result is not None else ""
            table.add_row(
                str(outcome.index), escape(outcome.kind), "[green]ok[/green]", escape(detail)
            )
        else:
            table.add_row(
                str(outcome.index),
                escape(outcome.kind),
                "[red]failed[/red]",
                escape(str(outcome.error)),
            )

    console.print(table)
    console.print(
        f"[bold]Total:[/bold] {len(result.outcomes)}  "
        f"[green]Succeeded:[/green] {result.succeeded}  "
        f"[red]Failed:[/red] {result.failed}  "
        f"[dim]({result.duration_seconds:.2f}s)[/dim]"
    )
