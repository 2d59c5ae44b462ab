"""SQLite store for permission grants and role membership."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable

from pydantic import ValidationError

from hubcontext.errors import InvalidInput, NotFound
from hubcontext.models import PermissionGrant, utcnow
from hubcontext.stores.docstore import connect

log = logging.getLogger(__name__)

_UPDATABLE = {"user_id", "role", "level", "expires_at"}


class GrantStore:
    """Grants per document plus the user → role table role grants match against.

    ``on_change`` is called with the document id after every grant mutation,
    so cached retrieval results that mention the document can be dropped.
    ``on_role_change`` is called with the user id when their roles change.
    """

    def __init__(
        self,
        db_path: str = "./data/hubcontext.db",
        *,
        on_change: Callable[[str], object] | None = None,
        on_role_change: Callable[[str], object] | None = None,
    ):
        self._conn = connect(db_path)
        self._on_change = on_change
        self._on_role_change = on_role_change
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS permission_grants (
                grant_id    TEXT PRIMARY KEY,
                doc_id      TEXT NOT NULL REFERENCES documents(doc_id) ON DELETE CASCADE,
                user_id     TEXT,
                role        TEXT,
                level       TEXT NOT NULL,
                expires_at  TEXT,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_grant_doc_user ON permission_grants(doc_id, user_id);

            CREATE TABLE IF NOT EXISTS user_roles (
                user_id  TEXT NOT NULL,
                role     TEXT NOT NULL,
                PRIMARY KEY (user_id, role)
            );
        """)
        self._conn.commit()

    # -- Grants --------------------------------------------------------------

    def add_grant(self, grant: PermissionGrant) -> PermissionGrant:
        self._conn.execute(
            """
            INSERT INTO permission_grants
                (grant_id, doc_id, user_id, role, level, expires_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                grant.grant_id,
                grant.doc_id,
                grant.user_id,
                grant.role,
                grant.level.value,
                grant.expires_at.isoformat() if grant.expires_at else None,
                grant.created_at.isoformat(),
                grant.updated_at.isoformat(),
            ),
        )
        self._conn.commit()
        log.info("Granted %s on %s to %s", grant.level.value, grant.doc_id, _grantee(grant))
        self._changed(grant.doc_id)
        return grant

    def update_grant(self, grant_id: str, **changes) -> PermissionGrant:
        """Change level, expiry or grantee of an existing grant."""
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise InvalidInput(
                f"Cannot update grant fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        current = self.get_grant(grant_id)
        if current is None:
            raise NotFound("Grant", grant_id)

        data = current.model_dump()
        data.update(changes, updated_at=utcnow())
        try:
            grant = PermissionGrant.model_validate(data)
        except ValidationError as exc:
            raise InvalidInput(f"Invalid grant update: {exc}", details={"grant_id": grant_id}) from exc

        self._conn.execute(
            """
            UPDATE permission_grants
               SET user_id = ?, role = ?, level = ?, expires_at = ?, updated_at = ?
             WHERE grant_id = ?
            """,
            (
                grant.user_id,
                grant.role,
                grant.level.value,
                grant.expires_at.isoformat() if grant.expires_at else None,
                grant.updated_at.isoformat(),
                grant_id,
            ),
        )
        self._conn.commit()
        self._changed(grant.doc_id)
        return grant

    def remove_grant(self, grant_id: str) -> bool:
        grant = self.get_grant(grant_id)
        if grant is None:
            return False
        self._conn.execute("DELETE FROM permission_grants WHERE grant_id = ?", (grant_id,))
        self._conn.commit()
        log.info("Revoked grant %s on %s", grant_id, grant.doc_id)
        self._changed(grant.doc_id)
        return True

    def get_grant(self, grant_id: str) -> PermissionGrant | None:
        row = self._conn.execute(
            "SELECT * FROM permission_grants WHERE grant_id = ?", (grant_id,)
        ).fetchone()
        return self._row_to_grant(row) if row else None

    def list_grants(self, doc_id: str) -> list[PermissionGrant]:
        rows = self._conn.execute(
            "SELECT * FROM permission_grants WHERE doc_id = ? ORDER BY created_at", (doc_id,)
        ).fetchall()
        return [self._row_to_grant(r) for r in rows]

    def user_grants(self, doc_id: str, user_id: str) -> list[PermissionGrant]:
        """Grants naming this user on this document (expired ones included)."""
        rows = self._conn.execute(
            "SELECT * FROM permission_grants WHERE doc_id = ? AND user_id = ?",
            (doc_id, user_id),
        ).fetchall()
        return [self._row_to_grant(r) for r in rows]

    def role_grants(self, doc_id: str, roles: list[str]) -> list[PermissionGrant]:
        """Role-based grants on this document open to everyone or to one of ``roles``."""
        rows = self._conn.execute(
            "SELECT * FROM permission_grants WHERE doc_id = ? AND user_id IS NULL",
            (doc_id,),
        ).fetchall()
        grants = [self._row_to_grant(r) for r in rows]
        return [g for g in grants if g.role is None or g.role in roles]

    def count_for_doc(self, doc_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM permission_grants WHERE doc_id = ?", (doc_id,)
        ).fetchone()
        return row["n"]

    # -- Roles ---------------------------------------------------------------

    def add_role(self, user_id: str, role: str) -> None:
        self._conn.execute(
            "INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, ?)", (user_id, role)
        )
        self._conn.commit()
        self._roles_changed(user_id)

    def remove_role(self, user_id: str, role: str) -> None:
        self._conn.execute(
            "DELETE FROM user_roles WHERE user_id = ? AND role = ?", (user_id, role)
        )
        self._conn.commit()
        self._roles_changed(user_id)

    def roles_for_user(self, user_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (user_id,)
        ).fetchall()
        return [r["role"] for r in rows]

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._conn.close()

    # -- Helpers -------------------------------------------------------------

    def _changed(self, doc_id: str) -> None:
        if self._on_change is not None:
            self._on_change(doc_id)

    def _roles_changed(self, user_id: str) -> None:
        if self._on_role_change is not None:
            self._on_role_change(user_id)

    @staticmethod
    def _row_to_grant(row: sqlite3.Row) -> PermissionGrant:
        return PermissionGrant(
            grant_id=row["grant_id"],
            doc_id=row["doc_id"],
            user_id=row["user_id"],
            role=row["role"],
            level=row["level"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _grantee(grant: PermissionGrant) -> str:
    if grant.user_id:
        return f"user {grant.user_id}"
    if grant.role:
        return f"role {grant.role}"
    return "everyone"
