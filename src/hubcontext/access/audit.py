"""Append-only access audit trail.

Every permission evaluation writes a ``permission_check`` entry followed by
exactly one outcome entry. The table refuses UPDATE and DELETE.
"""

from __future__ import annotations

import json
import sqlite3

from hubcontext.models import AccessAuditEntry, AuditAction
from hubcontext.stores.docstore import connect


class AuditLog:
    def __init__(self, db_path: str = "./data/hubcontext.db"):
        self._conn = connect(db_path)
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS access_audit_log (
                seq         INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_id    TEXT NOT NULL UNIQUE,
                doc_id      TEXT NOT NULL,
                user_id     TEXT NOT NULL,
                action      TEXT NOT NULL,
                metadata    TEXT NOT NULL DEFAULT '{}',
                created_at  TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_audit_doc ON access_audit_log(doc_id);
            CREATE INDEX IF NOT EXISTS idx_audit_user ON access_audit_log(user_id);

            CREATE TRIGGER IF NOT EXISTS audit_no_update
            BEFORE UPDATE ON access_audit_log
            BEGIN
                SELECT RAISE(ABORT, 'access_audit_log is append-only');
            END;

            CREATE TRIGGER IF NOT EXISTS audit_no_delete
            BEFORE DELETE ON access_audit_log
            BEGIN
                SELECT RAISE(ABORT, 'access_audit_log is append-only');
            END;
        """)
        self._conn.commit()

    def append(self, entry: AccessAuditEntry) -> AccessAuditEntry:
        """Write one entry. Errors propagate to the caller."""
        self._conn.execute(
            """
            INSERT INTO access_audit_log (entry_id, doc_id, user_id, action, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.doc_id,
                entry.user_id,
                entry.action.value,
                json.dumps(entry.metadata, default=str),
                entry.created_at.isoformat(),
            ),
        )
        self._conn.commit()
        return entry

    def entries(
        self,
        *,
        doc_id: str | None = None,
        user_id: str | None = None,
        action: AuditAction | None = None,
        limit: int | None = None,
    ) -> list[AccessAuditEntry]:
        """Entries in write order, optionally filtered."""
        clauses: list[str] = []
        params: list = []
        if doc_id is not None:
            clauses.append("doc_id = ?")
            params.append(doc_id)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if action is not None:
            clauses.append("action = ?")
            params.append(action.value)

        sql = "SELECT * FROM access_audit_log"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY seq"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> AccessAuditEntry:
        return AccessAuditEntry(
            entry_id=row["entry_id"],
            doc_id=row["doc_id"],
            user_id=row["user_id"],
            action=row["action"],
            metadata=json.loads(row["metadata"]),
            created_at=row["created_at"],
        )
