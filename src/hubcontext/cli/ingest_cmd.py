"""hubcontext ingest: ingest text files as one batch."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

_TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".rst", ".csv", ".json", ".html"}


def _collect(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved.is_dir():
            files.extend(
                sorted(p for p in resolved.rglob("*") if p.is_file() and p.suffix.lower() in _TEXT_SUFFIXES)
            )
        elif resolved.is_file():
            files.append(resolved)
        else:
            typer.echo(f"Path not found: {resolved}", err=True)
            raise typer.Exit(code=1)
    return files


def ingest_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files or folders to ingest")],
    owner: Annotated[str, typer.Option("--owner", "-o", help="Owning user id")],
    hub_area: Annotated[
        Optional[list[str]], typer.Option("--hub-area", "-a", help="Hub area tag (repeatable)")
    ] = None,
    wait: Annotated[
        bool, typer.Option("--wait", "-w", help="Show batch progress while it runs")
    ] = False,
):
    """Ingest text files into the document store as one batch.

    The batch runs in this process, so the command returns once it finishes.
    """
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import HubContextError
    from hubcontext.jobs.poller import poll_batch
    from hubcontext.models import BatchStatus, DocumentSpec

    files = _collect(paths)
    if not files:
        typer.echo("No files to ingest.", err=True)
        raise typer.Exit(code=1)

    specs = [
        DocumentSpec(
            title=f.stem,
            text=f.read_text(encoding="utf-8", errors="replace"),
            owner_id=owner,
            file_type=f.suffix.lstrip(".").lower() or "text",
            hub_areas=hub_area or [],
            metadata={"source_path": str(f)},
        )
        for f in files
    ]

    ctx = open_context()
    console = Console()

    def _progress(job):
        if not is_json():
            console.print(
                f"  {job.status.value}: {job.processed_items}/{job.total_items} processed, "
                f"{job.error_count} failed"
            )

    async def _run():
        batch_id = await ctx.pipeline.process_batch(specs, metadata={"source": "cli"})
        if wait:
            cfg = ctx.settings.batches
            await poll_batch(
                ctx.tracker,
                batch_id,
                interval=cfg.poll_interval,
                max_interval=cfg.max_poll_interval,
                backoff_factor=cfg.backoff_factor,
                on_update=_progress,
            )
        await ctx.pipeline.wait_idle()
        return ctx.tracker.get_status(batch_id)

    try:
        job = asyncio.run(_run())
    except HubContextError as exc:
        fail(exc)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "batch": job.model_dump(mode="json")}, indent=2))
        return

    table = Table(title=f"Batch {job.batch_id}: {job.status.value}")
    table.add_column("Document")
    table.add_column("Result")
    failures = {f["index"]: f["error"] for f in job.metadata.get("failures", [])}
    for index, spec in enumerate(specs):
        error = failures.get(index)
        table.add_row(spec.metadata["source_path"], f"[red]{error}[/red]" if error else "[green]ok[/green]")
    console.print(table)
    if job.metadata.get("error"):
        console.print(f"[red]Batch aborted: {job.metadata['error']}[/red]")
    if job.error_count or job.status == BatchStatus.FAILED:
        raise typer.Exit(code=1)
