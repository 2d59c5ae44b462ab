"""Batch ingestion status tracker.

Lifecycle: created -> running -> succeeded | failed. Status only moves
forward and terminal states are final. Each write is a compare-and-swap on
the row's (status, version), so concurrent pipeline callbacks and client
refreshes cannot regress a job.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import timedelta

from hubcontext.errors import BatchNotFound, HubContextError, StaleTransition
from hubcontext.models import BatchJob, BatchStatus, BatchUpdate, utcnow
from hubcontext.stores.docstore import connect

log = logging.getLogger(__name__)

_CAS_ATTEMPTS = 5


def check_transition(batch_id: str, current: BatchStatus, target: BatchStatus) -> None:
    """Raise StaleTransition unless ``current -> target`` keeps the job monotonic.

    Terminal jobs accept nothing, not even progress on the same status.
    """
    if current.is_terminal:
        raise StaleTransition(batch_id, current.value, target.value)
    if target.rank < current.rank:
        raise StaleTransition(batch_id, current.value, target.value)


class BatchStatusTracker:
    def __init__(self, db_path: str = "./data/hubcontext.db"):
        self._conn = connect(db_path)
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS batch_jobs (
                batch_id         TEXT PRIMARY KEY,
                status           TEXT NOT NULL,
                version          INTEGER NOT NULL DEFAULT 0,
                metadata         TEXT NOT NULL DEFAULT '{}',
                total_items      INTEGER NOT NULL DEFAULT 0,
                processed_items  INTEGER NOT NULL DEFAULT 0,
                error_count      INTEGER NOT NULL DEFAULT 0,
                created_at       TEXT NOT NULL,
                updated_at       TEXT NOT NULL,
                started_at       TEXT,
                completed_at     TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_batch_status ON batch_jobs(status);
        """)
        self._conn.commit()

    def create_batch(self, metadata: dict | None = None, *, total_items: int = 0) -> BatchJob:
        job = BatchJob(metadata=metadata or {}, total_items=total_items)
        self._conn.execute(
            """
            INSERT INTO batch_jobs
                (batch_id, status, version, metadata, total_items, processed_items,
                 error_count, created_at, updated_at)
            VALUES (?, ?, 0, ?, ?, 0, 0, ?, ?)
            """,
            (
                job.batch_id,
                job.status.value,
                json.dumps(job.metadata, default=str),
                job.total_items,
                job.created_at.isoformat(),
                job.updated_at.isoformat(),
            ),
        )
        self._conn.commit()
        log.info("Created batch %s (%d item(s))", job.batch_id, total_items)
        return job

    def get_status(self, batch_id: str) -> BatchJob | None:
        """Current state of a batch. Read-only, safe to poll."""
        row = self._select(batch_id)
        return self._row_to_job(row) if row else None

    def list_batches(self, status: BatchStatus | None = None, limit: int = 50) -> list[BatchJob]:
        if status is None:
            rows = self._conn.execute(
                "SELECT * FROM batch_jobs ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM batch_jobs WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                (status.value, limit),
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update_status(self, batch_id: str, updates: BatchUpdate | dict) -> BatchJob:
        """Apply ``updates`` unless they would break monotonicity.

        A rejected update is logged and ignored; the unchanged job is returned.
        """
        if isinstance(updates, dict):
            updates = BatchUpdate.model_validate(updates)

        for _ in range(_CAS_ATTEMPTS):
            row = self._select(batch_id)
            if row is None:
                raise BatchNotFound(batch_id)
            current = self._row_to_job(row)
            target = updates.status or current.status

            try:
                check_transition(batch_id, current.status, target)
            except StaleTransition as exc:
                log.warning("%s; update ignored", exc.message)
                return current

            job = self._apply(current, target, updates)
            cur = self._conn.execute(
                """
                UPDATE batch_jobs
                   SET status = ?, version = version + 1, metadata = ?, total_items = ?,
                       processed_items = ?, error_count = ?, updated_at = ?,
                       started_at = ?, completed_at = ?
                 WHERE batch_id = ? AND status = ? AND version = ?
                """,
                (
                    job.status.value,
                    json.dumps(job.metadata, default=str),
                    job.total_items,
                    job.processed_items,
                    job.error_count,
                    job.updated_at.isoformat(),
                    job.started_at.isoformat() if job.started_at else None,
                    job.completed_at.isoformat() if job.completed_at else None,
                    batch_id,
                    current.status.value,
                    row["version"],
                ),
            )
            self._conn.commit()
            if cur.rowcount == 1:
                if job.status != current.status:
                    log.info("Batch %s: %s -> %s", batch_id, current.status.value, job.status.value)
                return job
            log.debug("Batch %s changed concurrently, retrying update", batch_id)

        raise HubContextError(
            f"Batch {batch_id} kept changing; update not applied",
            details={"batch_id": batch_id},
        )

    def purge_finished(self, older_than: timedelta) -> int:
        """Retention cleanup: delete terminal batches completed before the cutoff."""
        cutoff = (utcnow() - older_than).isoformat()
        cur = self._conn.execute(
            """
            DELETE FROM batch_jobs
             WHERE status IN (?, ?) AND completed_at IS NOT NULL AND completed_at < ?
            """,
            (BatchStatus.SUCCEEDED.value, BatchStatus.FAILED.value, cutoff),
        )
        self._conn.commit()
        if cur.rowcount:
            log.info("Purged %d finished batch(es)", cur.rowcount)
        return cur.rowcount

    def close(self) -> None:
        self._conn.close()

    # -- Helpers -------------------------------------------------------------

    def _select(self, batch_id: str) -> sqlite3.Row | None:
        return self._conn.execute(
            "SELECT * FROM batch_jobs WHERE batch_id = ?", (batch_id,)
        ).fetchone()

    @staticmethod
    def _apply(current: BatchJob, target: BatchStatus, updates: BatchUpdate) -> BatchJob:
        now = utcnow()
        job = current.model_copy(deep=True)
        job.status = target
        job.updated_at = now
        if updates.metadata:
            job.metadata = {**job.metadata, **updates.metadata}
        if updates.total_items is not None:
            job.total_items = updates.total_items
        if updates.processed_items is not None:
            job.processed_items = updates.processed_items
        if updates.error_count is not None:
            job.error_count = updates.error_count
        if target.rank >= BatchStatus.RUNNING.rank and job.started_at is None:
            job.started_at = now
        if target.is_terminal:
            job.completed_at = now
        return job

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> BatchJob:
        return BatchJob(
            batch_id=row["batch_id"],
            status=row["status"],
            metadata=json.loads(row["metadata"]),
            total_items=row["total_items"],
            processed_items=row["processed_items"],
            error_count=row["error_count"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )
