"""hubcontext CLI: Typer entrypoint with global options."""

from __future__ import annotations

import json
import logging
import os
from typing import Annotated, Optional

import typer
from rich.console import Console

app = typer.Typer(
    name="hubcontext",
    help="Hub document context: ingest, retrieve, and manage access.",
    no_args_is_help=True,
)

# Global state shared across subcommands
_state: dict = {"json": False}


def is_json() -> bool:
    """Check if --json output mode is active."""
    return _state["json"]


def open_context():
    """Build the application context from the current settings."""
    from hubcontext.config import get_settings
    from hubcontext.context import build_context

    return build_context(get_settings())


def fail(exc: Exception) -> None:
    """Report a domain error and exit with status 1."""
    from hubcontext.errors import HubContextError

    if is_json():
        details = exc.details if isinstance(exc, HubContextError) else {}
        print(
            json.dumps(
                {"status": "error", "error": type(exc).__name__, "message": str(exc), "details": details},
                indent=2,
            )
        )
    else:
        Console(stderr=True).print(f"[red]{type(exc).__name__}:[/red] {exc}")
    raise typer.Exit(code=1)


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON (agent-friendly)")
    ] = False,
    profile: Annotated[
        Optional[str], typer.Option("--profile", "-p", help="Override active LLM profile")
    ] = None,
    root: Annotated[
        Optional[str], typer.Option("--root", help="Override project root directory")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Debug logging")
    ] = False,
):
    """Global options applied before any subcommand."""
    _state["json"] = json_output
    if root:
        os.environ["HUBCONTEXT_ROOT"] = root
    if profile:
        os.environ["HUBCONTEXT_ACTIVE_PROFILE"] = profile

    from hubcontext.config import reset_settings

    reset_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING if json_output else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


# Register subcommands -------------------------------------------------------

from hubcontext.cli.access_cmd import app as access_app  # noqa: E402
from hubcontext.cli.batch_cmd import app as batch_app  # noqa: E402
from hubcontext.cli.cache_cmd import app as cache_app  # noqa: E402
from hubcontext.cli.docs_cmd import app as docs_app  # noqa: E402
from hubcontext.cli.doctor import doctor_cmd  # noqa: E402
from hubcontext.cli.ingest_cmd import ingest_cmd  # noqa: E402
from hubcontext.cli.metrics_cmd import metrics_cmd  # noqa: E402
from hubcontext.cli.query_cmd import query_cmd  # noqa: E402

app.command(name="ingest", help="Ingest text files as one batch.")(ingest_cmd)
app.command(name="query", help="Retrieve context (and optionally an answer) for a query.")(query_cmd)
app.command(name="metrics", help="Summarize retrieval performance and quality.")(metrics_cmd)
app.command(name="doctor", help="Check system health and connectivity.")(doctor_cmd)
app.add_typer(batch_app, name="batch", help="Ingestion batch status.")
app.add_typer(access_app, name="access", help="Permission grants, roles and audit trail.")
app.add_typer(cache_app, name="cache", help="Context cache maintenance.")
app.add_typer(docs_app, name="docs", help="Document library.")
