"""hubcontext metrics: summarize retrieval performance and quality."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table


def metrics_cmd(
    timeframe: Annotated[
        str, typer.Option("--timeframe", "-t", help="day, week or month")
    ] = "week",
):
    """Summarize retrieval performance and quality."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import InvalidInput

    ctx = open_context()
    try:
        summary = ctx.metrics.summarize(timeframe)
    except ValueError as exc:
        fail(InvalidInput(str(exc)))
    finally:
        ctx.close()

    if is_json():
        print(json.dumps(summary, indent=2))
        return

    perf = summary["performance"]
    quality = summary["quality"]
    console = Console()
    console.print(f"[bold]Retrieval metrics, last {timeframe}[/bold]")
    console.print(f"  Queries: {perf['total_queries']}")
    console.print(f"  Average duration: {perf['average_duration_ms']:.0f} ms")
    console.print(f"  Cache hit rate: {perf['cache_hit_rate']:.1%}")
    console.print(f"  Error rate: {perf['error_rate']:.1%}")
    console.print(f"  Response generation: {perf['response_generation_avg_ms']:.0f} ms")
    console.print(f"  Average similarity: {quality['avg_similarity']:.3f}")
    console.print(f"  Average results: {quality['avg_result_count']:.1f}")

    if perf["by_hub_area"]:
        table = Table(title="By hub area")
        table.add_column("Hub area")
        table.add_column("Queries", justify="right")
        table.add_column("Avg ms", justify="right")
        table.add_column("Cache hits", justify="right")
        table.add_column("Avg similarity", justify="right")
        for hub, row in sorted(perf["by_hub_area"].items()):
            q = quality["by_hub_area"].get(hub, {})
            table.add_row(
                hub,
                str(row["count"]),
                f"{row['average_duration_ms']:.0f}",
                f"{row['cache_hit_rate']:.1%}",
                f"{q.get('avg_similarity', 0.0):.3f}",
            )
        console.print(table)
