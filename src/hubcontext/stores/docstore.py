"""SQLite-backed document and chunk store."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from hubcontext.models import Chunk, Document


def connect(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with row access by column name."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class DocStore:
    """Stores documents and their chunk text in SQLite."""

    def __init__(self, db_path: str = "./data/hubcontext.db"):
        self.db_path = db_path
        self._conn = connect(db_path)
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                doc_id      TEXT PRIMARY KEY,
                title       TEXT NOT NULL,
                text        TEXT NOT NULL,
                file_type   TEXT NOT NULL DEFAULT 'text',
                hub_areas   TEXT NOT NULL DEFAULT '[]',
                metadata    TEXT NOT NULL DEFAULT '{}',
                owner_id    TEXT,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_doc_owner ON documents(owner_id);

            CREATE TABLE IF NOT EXISTS chunks (
                chunk_id   TEXT PRIMARY KEY,
                doc_id     TEXT NOT NULL REFERENCES documents(doc_id) ON DELETE CASCADE,
                text       TEXT NOT NULL,
                idx        INTEGER NOT NULL,
                start_char INTEGER NOT NULL,
                end_char   INTEGER NOT NULL,
                metadata   TEXT NOT NULL DEFAULT '{}'
            );
            CREATE INDEX IF NOT EXISTS idx_chunk_doc ON chunks(doc_id);
        """)
        self._conn.commit()

    # -- Documents -----------------------------------------------------------

    def upsert_document(self, doc: Document) -> None:
        """Insert a document or update it in place (chunks are kept)."""
        self._conn.execute(
            """
            INSERT INTO documents
                (doc_id, title, text, file_type, hub_areas, metadata, owner_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(doc_id) DO UPDATE SET
                title = excluded.title,
                text = excluded.text,
                file_type = excluded.file_type,
                hub_areas = excluded.hub_areas,
                metadata = excluded.metadata,
                owner_id = excluded.owner_id,
                updated_at = excluded.updated_at
            """,
            (
                doc.doc_id,
                doc.title,
                doc.text,
                doc.file_type,
                json.dumps(doc.hub_areas),
                json.dumps(doc.metadata),
                doc.owner_id,
                doc.created_at.isoformat(),
                doc.updated_at.isoformat(),
            ),
        )
        self._conn.commit()

    def get_document(self, doc_id: str) -> Document | None:
        """Fetch a document by ID."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE doc_id = ?", (doc_id,)
        ).fetchone()
        return self._row_to_doc(row) if row else None

    def get_documents(self, doc_ids: list[str]) -> dict[str, Document]:
        """Fetch several documents at once, keyed by ID."""
        if not doc_ids:
            return {}
        placeholders = ",".join("?" for _ in doc_ids)
        rows = self._conn.execute(
            f"SELECT * FROM documents WHERE doc_id IN ({placeholders})", list(doc_ids)
        ).fetchall()
        return {r["doc_id"]: self._row_to_doc(r) for r in rows}

    def list_documents(self, hub_area: str | None = None) -> list[Document]:
        """List documents, newest first, optionally restricted to one hub area."""
        rows = self._conn.execute(
            "SELECT * FROM documents ORDER BY created_at DESC"
        ).fetchall()
        docs = [self._row_to_doc(r) for r in rows]
        if hub_area:
            docs = [d for d in docs if hub_area in d.hub_areas]
        return docs

    def delete_document(self, doc_id: str) -> bool:
        """Delete a document and, by cascade, its chunks."""
        cur = self._conn.execute("DELETE FROM documents WHERE doc_id = ?", (doc_id,))
        self._conn.commit()
        return cur.rowcount > 0

    # -- Chunks --------------------------------------------------------------

    def upsert_chunks(self, chunks: list[Chunk]) -> None:
        """Insert or replace chunk records."""
        self._conn.executemany(
            """
            INSERT OR REPLACE INTO chunks
                (chunk_id, doc_id, text, idx, start_char, end_char, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    c.chunk_id,
                    c.doc_id,
                    c.text,
                    c.index,
                    c.start_char,
                    c.end_char,
                    json.dumps(c.metadata),
                )
                for c in chunks
            ],
        )
        self._conn.commit()

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        row = self._conn.execute(
            "SELECT * FROM chunks WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        return self._row_to_chunk(row) if row else None

    def get_chunks_for_doc(self, doc_id: str) -> list[Chunk]:
        """Get all chunks for a document, ordered by index."""
        rows = self._conn.execute(
            "SELECT * FROM chunks WHERE doc_id = ? ORDER BY idx", (doc_id,)
        ).fetchall()
        return [self._row_to_chunk(r) for r in rows]

    def count_chunks(self, doc_id: str | None = None) -> int:
        if doc_id is None:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM chunks").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM chunks WHERE doc_id = ?", (doc_id,)
            ).fetchone()
        return row["n"]

    def delete_doc_chunks(self, doc_id: str) -> None:
        """Delete all chunks for a document (used before re-ingestion)."""
        self._conn.execute("DELETE FROM chunks WHERE doc_id = ?", (doc_id,))
        self._conn.commit()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._conn.close()

    # -- Helpers -------------------------------------------------------------

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> Document:
        return Document(
            doc_id=row["doc_id"],
            title=row["title"],
            text=row["text"],
            file_type=row["file_type"],
            hub_areas=json.loads(row["hub_areas"]),
            metadata=json.loads(row["metadata"]),
            owner_id=row["owner_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        return Chunk(
            chunk_id=row["chunk_id"],
            doc_id=row["doc_id"],
            text=row["text"],
            index=row["idx"],
            start_char=row["start_char"],
            end_char=row["end_char"],
            metadata=json.loads(row["metadata"]),
        )
