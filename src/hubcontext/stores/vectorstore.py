"""Qdrant embedded-mode vector index for document chunks."""

from __future__ import annotations

import logging
from pathlib import Path

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointStruct,
    VectorParams,
)

from hubcontext.errors import ProviderError
from hubcontext.models import Chunk, Document

log = logging.getLogger(__name__)


class VectorStore:
    """Qdrant vector store, runs in embedded mode (no server needed)."""

    def __init__(
        self,
        path: str = "./data/qdrant",
        collection: str = "hub_chunks",
        *,
        embed_dim: int = 1536,
        in_memory: bool = False,
    ):
        self.collection = collection
        self.embed_dim = embed_dim

        if in_memory:
            self.client = QdrantClient(":memory:")
        else:
            Path(path).mkdir(parents=True, exist_ok=True)
            self.client = QdrantClient(path=path)

        self._ensure_collection()

    def _ensure_collection(self) -> None:
        """Create the collection if it doesn't exist."""
        collections = [c.name for c in self.client.get_collections().collections]
        if self.collection not in collections:
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(
                    size=self.embed_dim,
                    distance=Distance.COSINE,
                ),
            )

    def upsert_chunks(
        self,
        doc: Document,
        chunks: list[Chunk],
        embeddings: list[list[float]],
    ) -> None:
        """Store chunk embeddings; the payload carries what filtering and ranking need."""
        points = [
            PointStruct(
                id=chunk.chunk_id,
                vector=embedding,
                payload={
                    "chunk_id": chunk.chunk_id,
                    "doc_id": chunk.doc_id,
                    "text": chunk.text,
                    "index": chunk.index,
                    "hub_areas": doc.hub_areas,
                    "doc_created_at": doc.created_at.timestamp(),
                },
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
        if points:
            self.client.upsert(collection_name=self.collection, points=points)

    def search(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        count: int,
        hub_area: str | None = None,
    ) -> list[dict]:
        """Return up to ``count`` chunks with similarity >= ``threshold``.

        Results are ordered by similarity, ties broken by the parent
        document's creation time (newer first) and then chunk id.
        """
        query_filter = None
        if hub_area:
            query_filter = Filter(
                must=[FieldCondition(key="hub_areas", match=MatchValue(value=hub_area))]
            )

        if count <= 0:
            return []

        # Qdrant cuts at ``limit`` in its own order, so keep widening the
        # window until every point tied with the last kept score is in it.
        limit = count
        while True:
            points = self._query(query_embedding, query_filter, threshold, limit)
            if len(points) < limit or points[-1].score < points[count - 1].score:
                break
            limit *= 2

        hits = [
            {
                "chunk_id": r.payload["chunk_id"],
                "doc_id": r.payload["doc_id"],
                "text": r.payload["text"],
                "index": r.payload.get("index", 0),
                "score": max(0.0, min(1.0, r.score)),
                "hub_areas": r.payload.get("hub_areas", []),
                "doc_created_at": r.payload.get("doc_created_at", 0.0),
            }
            for r in points
        ]
        hits.sort(key=lambda h: h["chunk_id"])
        hits.sort(key=lambda h: (h["score"], h["doc_created_at"]), reverse=True)
        hits = hits[:count]
        log.debug("Vector search returned %d hits (hub_area=%s)", len(hits), hub_area)
        return hits

    def _query(
        self,
        query_embedding: list[float],
        query_filter: Filter | None,
        threshold: float,
        limit: int,
    ) -> list:
        try:
            results = self.client.query_points(
                collection_name=self.collection,
                query=query_embedding,
                query_filter=query_filter,
                score_threshold=threshold,
                limit=limit,
                with_payload=True,
            )
        except Exception as exc:
            raise ProviderError(f"Vector search failed: {exc}") from exc
        return results.points

    def delete_by_doc_id(self, doc_id: str) -> None:
        """Delete all vectors for a given document."""
        self.client.delete(
            collection_name=self.collection,
            points_selector=Filter(
                must=[FieldCondition(key="doc_id", match=MatchValue(value=doc_id))]
            ),
        )

    def set_hub_areas(self, doc_id: str, hub_areas: list[str]) -> None:
        """Rewrite the hub-area tags on every vector of a document."""
        self.client.set_payload(
            collection_name=self.collection,
            payload={"hub_areas": hub_areas},
            points=Filter(
                must=[FieldCondition(key="doc_id", match=MatchValue(value=doc_id))]
            ),
        )

    def count(self) -> int:
        """Return the total number of vectors in the collection."""
        info = self.client.get_collection(self.collection)
        return info.points_count

    def close(self) -> None:
        self.client.close()
