"""Context cache: fingerprinted retrieval results with a freshness window.

Entries live in SQLite next to a reverse index (document → fingerprints) so
that a changed document or grant drops exactly the entries it could affect.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import sqlite3
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timedelta

from hubcontext.models import ChunkMatch, ContextCacheEntry, utcnow
from hubcontext.stores.docstore import connect

log = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """NFKC, casefold, collapse runs of whitespace, trim."""
    text = unicodedata.normalize("NFKC", query).casefold()
    return _WHITESPACE.sub(" ", text).strip()


def normalize_hub_area(hub_area: str | None) -> str | None:
    if hub_area is None:
        return None
    value = hub_area.strip().casefold()
    return value or None


def fingerprint(
    query: str,
    hub_area: str | None,
    threshold: float,
    count: int,
    user_id: str,
) -> str:
    """Deterministic cache key for one retrieval request.

    Results are permission-filtered, so the requesting user is part of the key.
    """
    payload = json.dumps(
        {
            "q": normalize_query(query),
            "hub": normalize_hub_area(hub_area),
            "t": round(float(threshold), 4),
            "n": int(count),
            "u": user_id,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class CacheStats:
    """Lookup counters since the cache was opened."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "hit_rate": round(self.hit_rate, 4),
        }


class ContextCache:
    def __init__(self, db_path: str = "./data/hubcontext.db", *, ttl_seconds: int = 86_400):
        self._conn = connect(db_path)
        self.ttl = timedelta(seconds=ttl_seconds)
        self.stats = CacheStats()
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS context_cache (
                fingerprint    TEXT PRIMARY KEY,
                query          TEXT NOT NULL,
                hub_area       TEXT,
                user_id        TEXT,
                results        TEXT NOT NULL,
                computed_at    TEXT NOT NULL,
                hit_count      INTEGER NOT NULL DEFAULT 0,
                last_accessed  TEXT
            );

            CREATE TABLE IF NOT EXISTS context_cache_documents (
                fingerprint  TEXT NOT NULL REFERENCES context_cache(fingerprint) ON DELETE CASCADE,
                doc_id       TEXT NOT NULL,
                PRIMARY KEY (fingerprint, doc_id)
            );
            CREATE INDEX IF NOT EXISTS idx_cache_doc ON context_cache_documents(doc_id);
            CREATE INDEX IF NOT EXISTS idx_cache_user ON context_cache(user_id);
        """)
        self._conn.commit()

    def lookup(self, key: str, *, now: datetime | None = None) -> ContextCacheEntry | None:
        """Return the fresh entry for ``key``, or None when missing or stale."""
        row = self._conn.execute(
            "SELECT * FROM context_cache WHERE fingerprint = ?", (key,)
        ).fetchone()
        if row is None:
            self.stats.misses += 1
            return None

        entry = self._row_to_entry(row)
        now = now or utcnow()
        if now - entry.computed_at > self.ttl:
            self.stats.expirations += 1
            self.stats.misses += 1
            return None

        self._conn.execute(
            "UPDATE context_cache SET hit_count = hit_count + 1, last_accessed = ? WHERE fingerprint = ?",
            (now.isoformat(), key),
        )
        self._conn.commit()
        self.stats.hits += 1
        return entry

    def store(self, key: str, entry: ContextCacheEntry) -> None:
        """Write ``entry`` under ``key``, replacing whatever was there."""
        results = json.dumps([m.model_dump(mode="json") for m in entry.results])
        with self._conn:
            self._conn.execute("DELETE FROM context_cache WHERE fingerprint = ?", (key,))
            self._conn.execute(
                """
                INSERT INTO context_cache
                    (fingerprint, query, hub_area, user_id, results, computed_at, hit_count)
                VALUES (?, ?, ?, ?, ?, ?, 0)
                """,
                (key, entry.query, entry.hub_area, entry.user_id, results, entry.computed_at.isoformat()),
            )
            self._conn.executemany(
                "INSERT INTO context_cache_documents (fingerprint, doc_id) VALUES (?, ?)",
                [(key, doc_id) for doc_id in sorted(entry.doc_ids)],
            )

    def invalidate(self, doc_id: str) -> int:
        """Drop every entry whose matches, kept or permission-filtered, include ``doc_id``."""
        with self._conn:
            cur = self._conn.execute(
                """
                DELETE FROM context_cache WHERE fingerprint IN (
                    SELECT fingerprint FROM context_cache_documents WHERE doc_id = ?
                )
                """,
                (doc_id,),
            )
        removed = cur.rowcount
        if removed:
            self.stats.invalidations += removed
            log.info("Invalidated %d cached context result(s) for document %s", removed, doc_id)
        return removed

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry computed for ``user_id`` (their roles changed)."""
        with self._conn:
            cur = self._conn.execute("DELETE FROM context_cache WHERE user_id = ?", (user_id,))
        removed = cur.rowcount
        if removed:
            self.stats.invalidations += removed
            log.info("Invalidated %d cached context result(s) for user %s", removed, user_id)
        return removed

    def purge_expired(self, *, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self.ttl
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM context_cache WHERE computed_at < ?", (cutoff.isoformat(),)
            )
        return cur.rowcount

    def clear(self) -> int:
        with self._conn:
            cur = self._conn.execute("DELETE FROM context_cache")
        return cur.rowcount

    def size(self) -> int:
        return self._conn.execute("SELECT COUNT(*) AS n FROM context_cache").fetchone()["n"]

    def count_stale(self, *, now: datetime | None = None) -> int:
        cutoff = ((now or utcnow()) - self.ttl).isoformat()
        return self._conn.execute(
            "SELECT COUNT(*) AS n FROM context_cache WHERE computed_at < ?", (cutoff,)
        ).fetchone()["n"]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ContextCacheEntry:
        return ContextCacheEntry(
            fingerprint=row["fingerprint"],
            results=[ChunkMatch.model_validate(m) for m in json.loads(row["results"])],
            computed_at=row["computed_at"],
            query=row["query"],
            hub_area=row["hub_area"],
            user_id=row["user_id"],
            hit_count=row["hit_count"],
        )
