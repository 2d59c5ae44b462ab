"""hubcontext cache: context cache maintenance."""

from __future__ import annotations

import json
from typing import Annotated

import typer

CONFIRM_PHRASE = "clear context cache"

app = typer.Typer(
    name="cache",
    help="Context cache maintenance commands.",
    no_args_is_help=True,
)


@app.command(name="stats")
def stats_cmd():
    """Show how many cached results are stored and how many are stale."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        total = ctx.cache.size()
        stale = ctx.cache.count_stale()
    finally:
        ctx.close()

    ttl = int(ctx.cache.ttl.total_seconds())
    if is_json():
        print(json.dumps({"entries": total, "stale": stale, "ttl_seconds": ttl}))
        return
    typer.echo(f"Entries: {total}")
    typer.echo(f"Stale: {stale}")
    typer.echo(f"TTL: {ttl}s")


@app.command(name="purge")
def purge_cmd():
    """Delete entries older than the cache TTL."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        removed = ctx.cache.purge_expired()
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "purged": removed}))
    else:
        typer.echo(f"Purged {removed} stale cache entr{'y' if removed == 1 else 'ies'}.")


@app.command(name="clear")
def clear_cmd(
    confirm: Annotated[
        str,
        typer.Option(
            "--confirm",
            help=f'Type "{CONFIRM_PHRASE}" to confirm.',
        ),
    ] = "",
):
    """Delete ALL cached context results.

    Requires --confirm "clear context cache" to proceed.
    """
    from hubcontext.cli.app import is_json, open_context

    if confirm != CONFIRM_PHRASE:
        typer.echo("Safety check failed.", err=True)
        typer.echo(
            f'To clear the cache, run:\n\n'
            f'  hubcontext cache clear --confirm "{CONFIRM_PHRASE}"',
            err=True,
        )
        raise typer.Exit(code=1)

    ctx = open_context()
    try:
        removed = ctx.cache.clear()
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "cleared": removed}))
    else:
        typer.echo(f"Cache cleared: {removed} entries deleted.")
