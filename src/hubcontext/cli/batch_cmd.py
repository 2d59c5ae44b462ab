"""hubcontext batch: inspect, follow and purge ingestion batches."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="batch",
    help="Ingestion batch status commands.",
    no_args_is_help=True,
)


def _print_jobs(jobs, title: str) -> None:
    from hubcontext.cli.app import is_json

    if is_json():
        print(json.dumps([j.model_dump(mode="json") for j in jobs], indent=2))
        return

    table = Table(title=title)
    table.add_column("Batch")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Updated")
    for j in jobs:
        table.add_row(
            j.batch_id,
            j.status.value,
            f"{j.processed_items}/{j.total_items}",
            str(j.error_count),
            j.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    Console().print(table)


@app.command(name="status")
def status_cmd(
    batch_id: Annotated[
        Optional[str], typer.Argument(help="Batch id; omit to list recent batches")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Batches to list")] = 20,
):
    """Show one batch, or the most recent ones."""
    from hubcontext.cli.app import fail, open_context
    from hubcontext.errors import BatchNotFound

    ctx = open_context()
    try:
        if batch_id is None:
            _print_jobs(ctx.tracker.list_batches(limit=limit), "Recent batches")
            return
        job = ctx.tracker.get_status(batch_id)
        if job is None:
            fail(BatchNotFound(batch_id))
        _print_jobs([job], f"Batch {batch_id}")
    finally:
        ctx.close()


@app.command(name="wait")
def wait_cmd(
    batch_id: Annotated[str, typer.Argument(help="Batch id")],
    timeout: Annotated[
        Optional[float], typer.Option("--timeout", help="Give up after this many seconds")
    ] = None,
):
    """Poll a batch until it succeeds or fails."""
    from hubcontext.cli.app import fail, open_context
    from hubcontext.errors import HubContextError
    from hubcontext.jobs.poller import poll_batch

    ctx = open_context()
    cfg = ctx.settings.batches
    try:
        job = asyncio.run(
            poll_batch(
                ctx.tracker,
                batch_id,
                interval=cfg.poll_interval,
                max_interval=cfg.max_poll_interval,
                backoff_factor=cfg.backoff_factor,
                timeout=timeout,
            )
        )
    except (HubContextError, TimeoutError) as exc:
        fail(exc)
    finally:
        ctx.close()
    _print_jobs([job], f"Batch {batch_id}")


@app.command(name="purge")
def purge_cmd(
    days: Annotated[
        Optional[int], typer.Option("--days", help="Delete finished batches older than this")
    ] = None,
):
    """Delete finished batches past the retention window."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        days = days if days is not None else ctx.settings.batches.retention_days
        removed = ctx.tracker.purge_finished(timedelta(days=days))
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "purged": removed}))
    else:
        typer.echo(f"Purged {removed} finished batch(es) older than {days} day(s).")
