"""hubcontext doctor: validate config, stores, and provider credentials."""

from __future__ import annotations

import asyncio
import json
import os
import typer
from rich.console import Console
from rich.table import Table

# Provider prefix in a LiteLLM model string -> key it needs.
_PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "cohere": "COHERE_API_KEY",
}


async def _check_config() -> tuple[bool, str]:
    """Verify config loads without error."""
    try:
        from hubcontext.config import get_settings
        settings = get_settings()
        profile = settings.llm
        return True, f"profile={settings.active_profile}, embed={profile.embed_model}"
    except Exception as e:
        return False, str(e)


async def _check_env_vars() -> tuple[bool, str]:
    """Check that the active profile's provider keys are set."""
    try:
        from hubcontext.config import get_settings
        profile = get_settings().llm
    except Exception as e:
        return False, str(e)

    needed = set()
    for model in (profile.chat_model, profile.embed_model):
        var = _PROVIDER_KEYS.get(model.split("/", 1)[0])
        if var:
            needed.add(var)
    missing = sorted(v for v in needed if not os.environ.get(v))
    if missing:
        return False, f"missing: {', '.join(missing)}"
    return True, f"{', '.join(sorted(needed)) or 'no keys needed'}"


async def _check_stores() -> tuple[bool, str]:
    """Open the SQLite store and the vector index."""
    try:
        from hubcontext.config import get_settings
        from hubcontext.context import build_context
        ctx = build_context(get_settings())
        try:
            docs = len(ctx.docstore.list_documents())
            vectors = ctx.vectorstore.count()
        finally:
            ctx.close()
        return True, f"{docs} document(s), {vectors} vector(s)"
    except Exception as e:
        return False, str(e)


async def _check_llm() -> tuple[bool, str]:
    """Call LiteLLM with a trivial prompt."""
    try:
        from hubcontext.llm import complete
        answer = await complete(
            [{"role": "user", "content": "Reply with exactly: OK"}],
            max_tokens=10,
        )
        return True, f"got response ({len(answer)} chars)"
    except Exception as e:
        return False, str(e)


async def _check_embed() -> tuple[bool, str]:
    """Embed a trivial input and compare its size with the configured dimension."""
    try:
        from hubcontext.config import get_settings
        from hubcontext.llm import embed
        expected = get_settings().llm.embed_dim
        vectors = await embed(["test"])
        dim = len(vectors[0])
        if dim != expected:
            return False, f"dim={dim}, config expects {expected}"
        return True, f"dim={dim}"
    except Exception as e:
        return False, str(e)


async def _run_checks() -> list[dict]:
    """Run all checks and return results."""
    checks = [
        ("Config", _check_config),
        ("Env Vars", _check_env_vars),
        ("Stores", _check_stores),
        ("LLM (chat)", _check_llm),
        ("Embeddings", _check_embed),
    ]
    results = []
    for name, check_fn in checks:
        ok, detail = await check_fn()
        results.append({"check": name, "ok": ok, "detail": detail})
    return results


def doctor_cmd():
    """Check system health and connectivity."""
    from hubcontext.cli.app import is_json

    results = asyncio.run(_run_checks())

    if is_json():
        print(json.dumps(results, indent=2))
        return

    console = Console()
    table = Table(title="hubcontext doctor", show_lines=True)
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")

    all_ok = True
    for r in results:
        status = "[green]PASS[/green]" if r["ok"] else "[red]FAIL[/red]"
        if not r["ok"]:
            all_ok = False
        table.add_row(r["check"], status, r["detail"])

    console.print(table)
    if all_ok:
        console.print("\n[bold green]All checks passed.[/bold green]")
    else:
        console.print("\n[bold yellow]Some checks failed. See details above.[/bold yellow]")
        raise typer.Exit(code=1)
