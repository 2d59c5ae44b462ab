"""Tests for hubcontext.metrics."""

from __future__ import annotations

from datetime import timedelta

import pytest

from hubcontext.metrics import NullMetricsSink, SQLiteMetricsSink
from hubcontext.models import PerformanceMetric, QualityMetric, utcnow


@pytest.fixture
def sink(db_path):
    s = SQLiteMetricsSink(db_path)
    yield s
    s.close()


def _perf(**kwargs) -> PerformanceMetric:
    return PerformanceMetric(**{"duration_ms": 100, **kwargs})


def test_summary_of_empty_sink(sink):
    summary = sink.summarize("day")
    assert summary["timeframe"] == "day"
    assert summary["performance"]["total_queries"] == 0
    assert summary["performance"]["cache_hit_rate"] == 0.0
    assert summary["quality"]["by_hub_area"] == {}


def test_performance_summary(sink):
    sink.record_performance(_perf(duration_ms=100, cache_hit=True, hub_area="marketing"))
    sink.record_performance(_perf(duration_ms=300, hub_area="marketing"))
    sink.record_performance(_perf(duration_ms=200, hub_area="sales", status="error", error_message="x"))
    sink.record_performance(_perf(operation_type="response_generation", duration_ms=900))

    perf = sink.summarize("week")["performance"]
    assert perf["total_queries"] == 3
    assert perf["average_duration_ms"] == pytest.approx(200)
    assert perf["cache_hit_rate"] == pytest.approx(1 / 3)
    assert perf["error_rate"] == pytest.approx(1 / 3)
    assert perf["response_generation_avg_ms"] == 900
    assert perf["by_hub_area"]["marketing"]["count"] == 2
    assert perf["by_hub_area"]["marketing"]["cache_hit_rate"] == 0.5


def test_quality_summary(sink):
    for avg, n in ((0.8, 4), (0.9, 2)):
        sink.record_quality(
            QualityMetric(
                query="q",
                hub_area="marketing",
                threshold=0.7,
                match_count=5,
                total_results=n,
                avg_similarity=avg,
            )
        )
    quality = sink.summarize("month")["quality"]
    assert quality["avg_similarity"] == pytest.approx(0.85)
    assert quality["avg_result_count"] == pytest.approx(3)
    assert quality["by_hub_area"]["marketing"]["count"] == 2


def test_old_samples_fall_outside_timeframe(sink):
    sink.record_performance(_perf(created_at=utcnow() - timedelta(days=3)))
    assert sink.summarize("day")["performance"]["total_queries"] == 0
    assert sink.summarize("week")["performance"]["total_queries"] == 1


def test_unknown_timeframe(sink):
    with pytest.raises(ValueError, match="timeframe"):
        sink.summarize("year")


def test_null_sink_records_nothing():
    sink = NullMetricsSink()
    sink.record_performance(_perf())
    assert sink.summarize()["performance"]["total_queries"] == 0
