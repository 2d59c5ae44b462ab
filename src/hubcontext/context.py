"""Process-wide wiring of stores and services.

Build one AppContext at startup, pass it (or its parts) to whatever needs
them, and close it at shutdown.
"""

from __future__ import annotations

from dataclasses import dataclass

from hubcontext.access.audit import AuditLog
from hubcontext.access.grants import GrantStore
from hubcontext.access.resolver import PermissionResolver
from hubcontext.config import Settings
from hubcontext.ingest.pipeline import IngestionPipeline
from hubcontext.jobs.tracker import BatchStatusTracker
from hubcontext.library import DocumentLibrary
from hubcontext.metrics import MetricsSink, NullMetricsSink, SQLiteMetricsSink
from hubcontext.retrieval.cache import ContextCache
from hubcontext.retrieval.engine import RetrievalEngine
from hubcontext.stores.docstore import DocStore
from hubcontext.stores.vectorstore import VectorStore


@dataclass
class AppContext:
    settings: Settings
    docstore: DocStore
    vectorstore: VectorStore
    grants: GrantStore
    audit: AuditLog
    cache: ContextCache
    metrics: MetricsSink
    resolver: PermissionResolver
    tracker: BatchStatusTracker
    engine: RetrievalEngine
    pipeline: IngestionPipeline
    library: DocumentLibrary

    def close(self) -> None:
        for resource in (
            self.vectorstore,
            self.docstore,
            self.grants,
            self.audit,
            self.cache,
            self.tracker,
            self.metrics,
        ):
            close = getattr(resource, "close", None)
            if close is not None:
                close()


def build_context(settings: Settings, *, in_memory_vectors: bool = False) -> AppContext:
    """Open every store named in ``settings`` and wire the services together."""
    profile = settings.llm
    db_path = settings.store.path

    docstore = DocStore(db_path)
    vectorstore = VectorStore(
        settings.qdrant.path,
        settings.qdrant.collection,
        embed_dim=profile.embed_dim,
        in_memory=in_memory_vectors,
    )
    cache = ContextCache(db_path, ttl_seconds=settings.retrieval.cache_ttl_seconds)
    grants = GrantStore(db_path, on_change=cache.invalidate, on_role_change=cache.invalidate_user)
    audit = AuditLog(db_path)
    metrics: MetricsSink = SQLiteMetricsSink(db_path) if settings.metrics.enabled else NullMetricsSink()
    resolver = PermissionResolver(docstore, grants, audit)
    tracker = BatchStatusTracker(db_path)

    engine = RetrievalEngine(
        docstore,
        vectorstore,
        cache,
        resolver,
        profile=profile,
        config=settings.retrieval,
        metrics=metrics,
    )
    pipeline = IngestionPipeline(
        docstore,
        vectorstore,
        tracker,
        cache,
        profile=profile,
        chunker=settings.chunker,
    )
    library = DocumentLibrary(docstore, vectorstore, grants, cache)

    return AppContext(
        settings=settings,
        docstore=docstore,
        vectorstore=vectorstore,
        grants=grants,
        audit=audit,
        cache=cache,
        metrics=metrics,
        resolver=resolver,
        tracker=tracker,
        engine=engine,
        pipeline=pipeline,
        library=library,
    )
