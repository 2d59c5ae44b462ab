"""Retrieval performance and quality metrics.

Two sinks: SQLiteMetricsSink persists samples and summarizes them,
NullMetricsSink drops everything (metrics disabled).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol

from hubcontext.models import PerformanceMetric, QualityMetric, utcnow
from hubcontext.stores.docstore import connect

TIMEFRAMES = {"day": timedelta(days=1), "week": timedelta(days=7), "month": timedelta(days=30)}


class MetricsSink(Protocol):
    def record_performance(self, metric: PerformanceMetric) -> None: ...

    def record_quality(self, metric: QualityMetric) -> None: ...

    def summarize(self, timeframe: str = "week") -> dict: ...


class NullMetricsSink:
    def record_performance(self, metric: PerformanceMetric) -> None:
        pass

    def record_quality(self, metric: QualityMetric) -> None:
        pass

    def summarize(self, timeframe: str = "week") -> dict:
        return _summary([], [], timeframe)


class SQLiteMetricsSink:
    def __init__(self, db_path: str = "./data/hubcontext.db"):
        self._conn = connect(db_path)
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS performance_metrics (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                operation_type  TEXT NOT NULL,
                duration_ms     INTEGER NOT NULL,
                cache_hit       INTEGER NOT NULL DEFAULT 0,
                hub_area        TEXT,
                user_id         TEXT,
                document_count  INTEGER NOT NULL DEFAULT 0,
                status          TEXT NOT NULL,
                error_message   TEXT,
                created_at      TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS retrieval_quality_metrics (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                query           TEXT NOT NULL,
                hub_area        TEXT,
                threshold       REAL NOT NULL,
                match_count     INTEGER NOT NULL,
                total_results   INTEGER NOT NULL,
                avg_similarity  REAL NOT NULL,
                max_similarity  REAL NOT NULL,
                min_similarity  REAL NOT NULL,
                user_id         TEXT,
                created_at      TEXT NOT NULL
            );
        """)
        self._conn.commit()

    def record_performance(self, metric: PerformanceMetric) -> None:
        self._conn.execute(
            """
            INSERT INTO performance_metrics
                (operation_type, duration_ms, cache_hit, hub_area, user_id,
                 document_count, status, error_message, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                metric.operation_type,
                metric.duration_ms,
                int(metric.cache_hit),
                metric.hub_area,
                metric.user_id,
                metric.document_count,
                metric.status,
                metric.error_message,
                metric.created_at.isoformat(),
            ),
        )
        self._conn.commit()

    def record_quality(self, metric: QualityMetric) -> None:
        self._conn.execute(
            """
            INSERT INTO retrieval_quality_metrics
                (query, hub_area, threshold, match_count, total_results,
                 avg_similarity, max_similarity, min_similarity, user_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                metric.query,
                metric.hub_area,
                metric.threshold,
                metric.match_count,
                metric.total_results,
                metric.avg_similarity,
                metric.max_similarity,
                metric.min_similarity,
                metric.user_id,
                metric.created_at.isoformat(),
            ),
        )
        self._conn.commit()

    def summarize(self, timeframe: str = "week") -> dict:
        """Averages over the last day, week or month, overall and per hub area."""
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe '{timeframe}'. Use one of: {', '.join(TIMEFRAMES)}")
        since = (utcnow() - TIMEFRAMES[timeframe]).isoformat()
        perf = self._conn.execute(
            "SELECT * FROM performance_metrics WHERE created_at >= ?", (since,)
        ).fetchall()
        quality = self._conn.execute(
            "SELECT * FROM retrieval_quality_metrics WHERE created_at >= ?", (since,)
        ).fetchall()
        return _summary([dict(r) for r in perf], [dict(r) for r in quality], timeframe)

    def close(self) -> None:
        self._conn.close()


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _by_hub(rows: list[dict]) -> dict[str, list[dict]]:
    groups: dict[str, list[dict]] = {}
    for row in rows:
        groups.setdefault(row.get("hub_area") or "unknown", []).append(row)
    return groups


def _summary(perf: list[dict], quality: list[dict], timeframe: str) -> dict:
    queries = [p for p in perf if p["operation_type"] == "context_retrieval"]
    generation = [p for p in perf if p["operation_type"] == "response_generation"]

    performance = {
        "total_queries": len(queries),
        "average_duration_ms": _mean([q["duration_ms"] for q in queries]),
        "cache_hit_rate": _mean([1.0 if q["cache_hit"] else 0.0 for q in queries]),
        "error_rate": _mean([1.0 if q["status"] == "error" else 0.0 for q in queries]),
        "response_generation_avg_ms": _mean([g["duration_ms"] for g in generation]),
        "by_hub_area": {
            hub: {
                "average_duration_ms": _mean([r["duration_ms"] for r in rows]),
                "cache_hit_rate": _mean([1.0 if r["cache_hit"] else 0.0 for r in rows]),
                "count": len(rows),
            }
            for hub, rows in _by_hub(queries).items()
        },
    }
    retrieval_quality = {
        "avg_similarity": _mean([q["avg_similarity"] for q in quality]),
        "avg_result_count": _mean([q["total_results"] for q in quality]),
        "by_hub_area": {
            hub: {
                "avg_similarity": _mean([r["avg_similarity"] for r in rows]),
                "avg_result_count": _mean([r["total_results"] for r in rows]),
                "count": len(rows),
            }
            for hub, rows in _by_hub(quality).items()
        },
    }
    return {"timeframe": timeframe, "performance": performance, "quality": retrieval_quality}
