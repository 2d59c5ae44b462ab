"""hubcontext docs: list, inspect, retag and delete documents."""

from __future__ import annotations

import json
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="docs",
    help="Document library commands.",
    no_args_is_help=True,
)


@app.command(name="list")
def list_cmd(
    hub_area: Annotated[
        Optional[str], typer.Option("--hub-area", "-a", help="Only documents in this hub area")
    ] = None,
):
    """List stored documents."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        docs = ctx.library.list_documents(hub_area)
        counts = {d.doc_id: ctx.docstore.count_chunks(d.doc_id) for d in docs}
    finally:
        ctx.close()

    if is_json():
        print(
            json.dumps(
                [
                    {**d.model_dump(mode="json", exclude={"text"}), "chunks": counts[d.doc_id]}
                    for d in docs
                ],
                indent=2,
            )
        )
        return

    table = Table(title=f"{len(docs)} document(s)")
    table.add_column("Document")
    table.add_column("Title")
    table.add_column("Owner")
    table.add_column("Hub areas")
    table.add_column("Chunks", justify="right")
    for d in docs:
        table.add_row(d.doc_id, d.title, d.owner_id or "", ", ".join(d.hub_areas), str(counts[d.doc_id]))
    Console().print(table)


@app.command(name="tag")
def tag_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    hub_area: Annotated[list[str], typer.Option("--hub-area", "-a", help="Hub area (repeatable)")],
):
    """Replace a document's hub areas."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import HubContextError

    ctx = open_context()
    try:
        doc = ctx.library.update_document(doc_id, hub_areas=hub_area)
    except HubContextError as exc:
        fail(exc)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "doc_id": doc.doc_id, "hub_areas": doc.hub_areas}))
    else:
        typer.echo(f"{doc.title}: {', '.join(doc.hub_areas) or '(no hub areas)'}")


@app.command(name="delete")
def delete_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Delete even if grants reference it")
    ] = False,
):
    """Delete a document with its chunks, vectors and cached results."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import HubContextError

    ctx = open_context()
    try:
        ctx.library.delete_document(doc_id, force=force)
    except HubContextError as exc:
        fail(exc)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "deleted": doc_id}))
    else:
        typer.echo(f"Deleted {doc_id}")
