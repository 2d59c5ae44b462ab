"""hubcontext access: permission grants, roles and the audit trail."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="access",
    help="Permission grants, roles and audit trail.",
    no_args_is_help=True,
)


def _grantee(grant) -> str:
    if grant.user_id:
        return f"user:{grant.user_id}"
    if grant.role:
        return f"role:{grant.role}"
    return "everyone"


@app.command(name="grant")
def grant_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Grant to one user")] = None,
    role: Annotated[Optional[str], typer.Option("--role", "-r", help="Grant to a role")] = None,
    public: Annotated[bool, typer.Option("--public", help="Grant to everyone")] = False,
    level: Annotated[str, typer.Option("--level", "-l", help="read, write or admin")] = "read",
    expires: Annotated[
        Optional[datetime], typer.Option("--expires", help="Expiry (ISO date/time, UTC)")
    ] = None,
):
    """Grant a permission level on a document."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import DocumentNotFound, InvalidInput
    from hubcontext.models import PermissionGrant, PermissionLevel

    if sum(bool(x) for x in (user, role, public)) != 1:
        fail(InvalidInput("Pass exactly one of --user, --role or --public"))
    try:
        permission = PermissionLevel(level)
    except ValueError:
        fail(InvalidInput(f"Unknown permission level '{level}'"))

    ctx = open_context()
    try:
        if ctx.docstore.get_document(doc_id) is None:
            fail(DocumentNotFound(doc_id))
        grant = ctx.grants.add_grant(
            PermissionGrant(doc_id=doc_id, user_id=user, role=role, level=permission, expires_at=expires)
        )
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"status": "ok", "grant": grant.model_dump(mode="json")}, indent=2))
    else:
        typer.echo(f"Granted {grant.level.value} on {doc_id} to {_grantee(grant)} ({grant.grant_id})")


@app.command(name="revoke")
def revoke_cmd(grant_id: Annotated[str, typer.Argument(help="Grant id")]):
    """Remove a grant."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import NotFound

    ctx = open_context()
    try:
        removed = ctx.grants.remove_grant(grant_id)
    finally:
        ctx.close()
    if not removed:
        fail(NotFound("Grant", grant_id))

    if is_json():
        print(json.dumps({"status": "ok", "revoked": grant_id}))
    else:
        typer.echo(f"Revoked {grant_id}")


@app.command(name="grants")
def grants_cmd(doc_id: Annotated[str, typer.Argument(help="Document id")]):
    """List the grants on a document."""
    from hubcontext.cli.app import is_json, open_context
    from hubcontext.models import utcnow

    ctx = open_context()
    try:
        grants = ctx.grants.list_grants(doc_id)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps([g.model_dump(mode="json") for g in grants], indent=2))
        return

    now = utcnow()
    table = Table(title=f"Grants on {doc_id}")
    table.add_column("Grant")
    table.add_column("Grantee")
    table.add_column("Level")
    table.add_column("Expires")
    for g in grants:
        expires = g.expires_at.isoformat() if g.expires_at else "never"
        if g.is_expired(now):
            expires = f"[red]{expires} (expired)[/red]"
        table.add_row(g.grant_id, _grantee(g), g.level.value, expires)
    Console().print(table)


@app.command(name="check")
def check_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id")],
    user: Annotated[str, typer.Option("--user", "-u", help="User id")],
    level: Annotated[str, typer.Option("--level", "-l", help="read, write or admin")] = "read",
):
    """Resolve a permission check (recorded in the audit trail)."""
    from hubcontext.cli.app import fail, is_json, open_context
    from hubcontext.errors import HubContextError

    ctx = open_context()
    try:
        decision = ctx.resolver.resolve(doc_id, user, level)
    except HubContextError as exc:
        fail(exc)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps(decision.model_dump(mode="json"), indent=2))
    else:
        verdict = "[green]ALLOWED[/green]" if decision.allowed else "[red]DENIED[/red]"
        Console().print(f"{verdict} {level} on {doc_id} for {user} (source: {decision.basis.permission_source})")
    if not decision.allowed:
        raise typer.Exit(code=2)


@app.command(name="audit")
def audit_cmd(
    doc_id: Annotated[Optional[str], typer.Option("--doc", "-d", help="Filter by document")] = None,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="Filter by user")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum entries")] = 100,
):
    """Show the access audit trail in write order."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        entries = ctx.audit.entries(doc_id=doc_id, user_id=user, limit=limit)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    table = Table(title="Access audit log")
    table.add_column("When")
    table.add_column("Action")
    table.add_column("Document")
    table.add_column("User")
    table.add_column("Level")
    for e in entries:
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            e.action.value,
            e.doc_id,
            e.user_id,
            str(e.metadata.get("permission_level", "")),
        )
    Console().print(table)


@app.command(name="role")
def role_cmd(
    user: Annotated[str, typer.Argument(help="User id")],
    role: Annotated[Optional[str], typer.Argument(help="Role to add or remove")] = None,
    remove: Annotated[bool, typer.Option("--remove", help="Remove the role instead")] = False,
):
    """Add or remove a role for a user, or list the user's roles."""
    from hubcontext.cli.app import is_json, open_context

    ctx = open_context()
    try:
        if role:
            if remove:
                ctx.grants.remove_role(user, role)
            else:
                ctx.grants.add_role(user, role)
        roles = ctx.grants.roles_for_user(user)
    finally:
        ctx.close()

    if is_json():
        print(json.dumps({"user_id": user, "roles": roles}))
    else:
        typer.echo(f"{user}: {', '.join(roles) or '(no roles)'}")
