"""hubcontext query: retrieve permission-filtered context for a query."""

from __future__ import annotations

import asyncio
import json
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table


def query_cmd(
    query: Annotated[str, typer.Argument(help="Query text")],
    user: Annotated[str, typer.Option("--user", "-u", help="Requesting user id")],
    hub_area: Annotated[
        Optional[str], typer.Option("--hub-area", "-a", help="Restrict to one hub area")
    ] = None,
    threshold: Annotated[
        Optional[float], typer.Option("--threshold", "-t", help="Minimum similarity (0-1)")
    ] = None,
    count: Annotated[
        Optional[int], typer.Option("--count", "-k", help="Maximum number of chunks")
    ] = None,
    answer: Annotated[
        bool, typer.Option("--answer/--no-answer", help="Generate an answer from the context")
    ] = False,
):
    """Retrieve context for a query as USER."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import HubContextError
    from hubcontext.retrieval.answer import generate_response

    ctx = open_context()

    async def _run():
        context = await ctx.engine.retrieve_context(
            query, user, hub_area=hub_area, threshold=threshold, count=count
        )
        reply = None
        if answer:
            reply = await generate_response(
                query,
                context,
                profile=ctx.engine.profile,
                prompts=ctx.settings.prompts,
                snippet_length=ctx.settings.retrieval.snippet_length,
                metrics=ctx.metrics,
                user_id=user,
            )
        return context, reply

    try:
        context, reply = asyncio.run(_run())
    except HubContextError as exc:
        fail(exc)
    finally:
        ctx.close()

    if is_json():
        payload = {"status": "ok", **context.model_dump(mode="json")}
        if reply is not None:
            payload["answer"] = reply.content
            payload["citations"] = [c.model_dump(mode="json") for c in reply.citations]
        print(json.dumps(payload, indent=2))
        return

    console = Console()
    if reply is not None:
        console.print(Panel(Markdown(reply.content), title="Answer", border_style="green"))

    if not context.results:
        console.print(f"[yellow]No matching context ({context.source.value}).[/yellow]")
        return

    table = Table(title=f"{len(context.results)} chunk(s) from {context.source.value}")
    table.add_column("#", justify="right")
    table.add_column("Document")
    table.add_column("Hub areas")
    table.add_column("Similarity", justify="right")
    table.add_column("Excerpt")
    for i, match in enumerate(context.results, 1):
        table.add_row(
            f"D{i}",
            match.title or match.doc_id,
            ", ".join(match.hub_areas),
            f"{match.similarity:.3f}",
            match.text[:80].replace("\n", " "),
        )
    console.print(table)
