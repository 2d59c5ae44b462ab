"""Tests for hubcontext.retrieval.cache."""

from __future__ import annotations

from datetime import timedelta

import pytest

from hubcontext.models import ChunkMatch, ContextCacheEntry, utcnow
from hubcontext.retrieval.cache import ContextCache, fingerprint, normalize_query


@pytest.fixture
def cache(db_path):
    c = ContextCache(db_path, ttl_seconds=3600)
    yield c
    c.close()


def _match(doc_id: str, chunk_id: str = "c-1", similarity: float = 0.9) -> ChunkMatch:
    return ChunkMatch(chunk_id=chunk_id, doc_id=doc_id, text="...", chunk_index=0, similarity=similarity)


def _entry(key: str, *doc_ids: str, **kwargs) -> ContextCacheEntry:
    return ContextCacheEntry(
        fingerprint=key,
        results=[_match(d, chunk_id=f"c-{d}") for d in doc_ids],
        **kwargs,
    )


# --- Fingerprints ------------------------------------------------------------


def test_normalize_query():
    assert normalize_query("  Q3   Launch\tPlan\n") == "q3 launch plan"


def test_fingerprint_ignores_whitespace_and_case():
    a = fingerprint("Q3 launch  plan", "Marketing", 0.7, 5, "bob")
    b = fingerprint("  q3 LAUNCH plan ", " marketing ", 0.7, 5, "bob")
    assert a == b


@pytest.mark.parametrize(
    "changed",
    [
        ("other query", "marketing", 0.7, 5, "bob"),
        ("q3 launch plan", "sales", 0.7, 5, "bob"),
        ("q3 launch plan", None, 0.7, 5, "bob"),
        ("q3 launch plan", "marketing", 0.8, 5, "bob"),
        ("q3 launch plan", "marketing", 0.7, 6, "bob"),
        ("q3 launch plan", "marketing", 0.7, 5, "carol"),
    ],
)
def test_fingerprint_distinguishes_requests(changed):
    assert fingerprint(*changed) != fingerprint("q3 launch plan", "marketing", 0.7, 5, "bob")


# --- Store / lookup ----------------------------------------------------------


def test_lookup_miss(cache):
    assert cache.lookup("nope") is None
    assert cache.stats.misses == 1


def test_store_then_lookup(cache):
    cache.store("k1", _entry("k1", "doc-1", query="q"))
    entry = cache.lookup("k1")
    assert entry is not None
    assert [m.doc_id for m in entry.results] == ["doc-1"]
    assert cache.stats.hits == 1


def test_store_is_idempotent(cache):
    cache.store("k1", _entry("k1", "doc-1"))
    cache.store("k1", _entry("k1", "doc-1"))
    assert cache.size() == 1
    assert [m.doc_id for m in cache.lookup("k1").results] == ["doc-1"]


def test_last_write_wins(cache):
    cache.store("k1", _entry("k1", "doc-1"))
    cache.store("k1", _entry("k1", "doc-2"))
    assert [m.doc_id for m in cache.lookup("k1").results] == ["doc-2"]
    # the old reverse-index row went with the old entry
    assert cache.invalidate("doc-1") == 0


def test_stale_entry_is_a_miss(cache):
    cache.store("k1", _entry("k1", "doc-1", computed_at=utcnow() - timedelta(hours=2)))
    assert cache.lookup("k1") is None
    assert cache.stats.expirations == 1
    assert cache.count_stale() == 1


def test_lookup_respects_now(cache):
    cache.store("k1", _entry("k1", "doc-1"))
    assert cache.lookup("k1", now=utcnow() + timedelta(minutes=59)) is not None
    assert cache.lookup("k1", now=utcnow() + timedelta(minutes=61)) is None


def test_empty_results_are_cached(cache):
    cache.store("k1", _entry("k1"))
    entry = cache.lookup("k1")
    assert entry is not None
    assert entry.results == []


# --- Invalidation ------------------------------------------------------------


def test_invalidate_drops_entries_mentioning_document(cache):
    cache.store("k1", _entry("k1", "doc-1", "doc-2"))
    cache.store("k2", _entry("k2", "doc-2"))
    cache.store("k3", _entry("k3", "doc-3"))

    assert cache.invalidate("doc-2") == 2
    assert cache.lookup("k1") is None
    assert cache.lookup("k2") is None
    assert cache.lookup("k3") is not None
    assert cache.stats.invalidations == 2


def test_invalidate_covers_filtered_documents(cache):
    cache.store("k1", _entry("k1", "doc-1", filtered_doc_ids=["doc-secret"]))
    assert cache.invalidate("doc-secret") == 1


def test_invalidate_user(cache):
    cache.store("k1", _entry("k1", "doc-1", user_id="bob"))
    cache.store("k2", _entry("k2", "doc-1", user_id="carol"))
    assert cache.invalidate_user("bob") == 1
    assert cache.lookup("k2") is not None


def test_purge_and_clear(cache):
    cache.store("old", _entry("old", "doc-1", computed_at=utcnow() - timedelta(days=2)))
    cache.store("new", _entry("new", "doc-1"))

    assert cache.purge_expired() == 1
    assert cache.size() == 1
    assert cache.clear() == 1
    assert cache.size() == 0


def test_stats_hit_rate(cache):
    cache.store("k1", _entry("k1", "doc-1"))
    cache.lookup("k1")
    cache.lookup("missing")
    assert cache.stats.hit_rate == 0.5
    assert cache.stats.to_dict()["hits"] == 1
