"""Context retrieval: cache check, query embedding, vector search, permission filter."""

from __future__ import annotations

import logging
import time

from hubcontext import llm
from hubcontext.access.resolver import PermissionResolver
from hubcontext.config import LLMProfile, RetrievalConfig
from hubcontext.errors import InvalidInput, ResolutionError
from hubcontext.metrics import MetricsSink, NullMetricsSink
from hubcontext.models import (
    ChunkMatch,
    ContextCacheEntry,
    ContextResult,
    PerformanceMetric,
    PermissionLevel,
    QualityMetric,
    RetrievalSource,
)
from hubcontext.retrieval.cache import ContextCache, fingerprint, normalize_hub_area
from hubcontext.stores.docstore import DocStore
from hubcontext.stores.vectorstore import VectorStore

log = logging.getLogger(__name__)


class RetrievalEngine:
    def __init__(
        self,
        docstore: DocStore,
        vectorstore: VectorStore,
        cache: ContextCache,
        resolver: PermissionResolver,
        *,
        profile: LLMProfile | None = None,
        config: RetrievalConfig | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.docstore = docstore
        self.vectorstore = vectorstore
        self.cache = cache
        self.resolver = resolver
        self.profile = profile
        self.config = config or RetrievalConfig()
        self.metrics = metrics or NullMetricsSink()

    def clamp(self, threshold: float | None, count: int | None) -> tuple[float, int]:
        """Bring caller-tuned bounds into the supported range."""
        if threshold is None:
            threshold = self.config.threshold
        if count is None:
            count = self.config.count
        threshold = min(1.0, max(0.0, float(threshold)))
        count = min(self.config.max_count, max(self.config.min_count, int(count)))
        return threshold, count

    async def retrieve_context(
        self,
        query: str,
        user_id: str,
        *,
        hub_area: str | None = None,
        threshold: float | None = None,
        count: int | None = None,
    ) -> ContextResult:
        """Ranked, permission-filtered chunks relevant to ``query``.

        Returns ``source=cache`` for a fresh cached answer, otherwise computes
        the result live and caches it. Chunks from documents the user cannot
        read are dropped silently.
        """
        if not query or not query.strip():
            raise InvalidInput("Query must not be empty")
        if not user_id:
            raise InvalidInput("User ID is required")

        threshold, count = self.clamp(threshold, count)
        hub_area = normalize_hub_area(hub_area)
        key = fingerprint(query, hub_area, threshold, count, user_id)
        start = time.perf_counter()

        cached = self.cache.lookup(key)
        if cached is not None:
            log.info("Cache hit for query: %.50s", query)
            self._record_performance(start, True, hub_area, user_id, len(cached.results))
            return ContextResult(results=cached.results, source=RetrievalSource.CACHE, fingerprint=key)

        try:
            results, filtered = await self._retrieve_live(query, user_id, hub_area, threshold, count)
        except Exception as exc:
            self._record_performance(start, False, hub_area, user_id, 0, error=exc)
            raise

        self.cache.store(
            key,
            ContextCacheEntry(
                fingerprint=key,
                results=results,
                query=query,
                hub_area=hub_area,
                user_id=user_id,
                filtered_doc_ids=filtered,
            ),
        )
        self._record_performance(start, False, hub_area, user_id, len(results))
        self._record_quality(query, hub_area, threshold, count, user_id, results)
        return ContextResult(results=results, source=RetrievalSource.LIVE, fingerprint=key)

    async def _retrieve_live(
        self,
        query: str,
        user_id: str,
        hub_area: str | None,
        threshold: float,
        count: int,
    ) -> tuple[list[ChunkMatch], list[str]]:
        """Live results plus the ids of matching documents the user cannot read."""
        embedding = await llm.embed_query(query, profile=self.profile)
        hits = self.vectorstore.search(embedding, threshold=threshold, count=count, hub_area=hub_area)

        seen: set[str] = set()
        unique = []
        for hit in hits:
            if hit["chunk_id"] not in seen:
                seen.add(hit["chunk_id"])
                unique.append(hit)

        readable = self._readable_docs(unique, user_id)
        docs = self.docstore.get_documents(sorted(readable))

        results: list[ChunkMatch] = []
        for hit in unique:
            doc = docs.get(hit["doc_id"])
            if doc is None:
                continue
            results.append(
                ChunkMatch(
                    chunk_id=hit["chunk_id"],
                    doc_id=hit["doc_id"],
                    text=hit["text"],
                    chunk_index=hit["index"],
                    similarity=hit["score"],
                    title=doc.title,
                    file_type=doc.file_type,
                    hub_areas=doc.hub_areas,
                    doc_created_at=doc.created_at,
                )
            )

        dropped = len(unique) - len(results)
        filtered = sorted({h["doc_id"] for h in unique} - readable)
        log.info(
            "Retrieved %d chunk(s) for query %.50s (%d filtered by permission)",
            len(results), query, dropped,
        )
        return results, filtered

    def _readable_docs(self, hits: list[dict], user_id: str) -> set[str]:
        """Parent documents of ``hits`` the user may read; one evaluation per document."""
        readable: set[str] = set()
        for doc_id in dict.fromkeys(h["doc_id"] for h in hits):
            try:
                decision = self.resolver.resolve(doc_id, user_id, PermissionLevel.READ)
            except ResolutionError as exc:
                log.warning("Dropping chunks of %s, permission check failed: %s", doc_id, exc.message)
                continue
            if decision.allowed:
                readable.add(doc_id)
        return readable

    # -- Metrics -------------------------------------------------------------

    def _record_performance(
        self,
        start: float,
        cache_hit: bool,
        hub_area: str | None,
        user_id: str,
        document_count: int,
        *,
        error: Exception | None = None,
    ) -> None:
        metric = PerformanceMetric(
            duration_ms=round((time.perf_counter() - start) * 1000),
            cache_hit=cache_hit,
            hub_area=hub_area,
            user_id=user_id,
            document_count=document_count,
            status="error" if error else "success",
            error_message=str(error) if error else None,
        )
        try:
            self.metrics.record_performance(metric)
        except Exception:
            log.exception("Failed to record performance metrics")

    def _record_quality(
        self,
        query: str,
        hub_area: str | None,
        threshold: float,
        count: int,
        user_id: str,
        results: list[ChunkMatch],
    ) -> None:
        similarities = [r.similarity for r in results]
        metric = QualityMetric(
            query=query,
            hub_area=hub_area,
            threshold=threshold,
            match_count=count,
            total_results=len(results),
            avg_similarity=sum(similarities) / len(similarities) if similarities else 0.0,
            max_similarity=max(similarities, default=0.0),
            min_similarity=min(similarities, default=0.0),
            user_id=user_id,
        )
        try:
            self.metrics.record_quality(metric)
        except Exception:
            log.exception("Failed to record quality metrics")
