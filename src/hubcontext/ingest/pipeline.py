"""Ingestion pipeline: chunk → embed → store, reported through a batch.

``process``/``process_batch`` return a batch id immediately and do the work
in a background task; clients follow progress with the BatchStatusTracker.
"""

from __future__ import annotations

import asyncio
import logging

from hubcontext import llm
from hubcontext.config import ChunkerConfig, LLMProfile
from hubcontext.errors import InvalidInput
from hubcontext.ingest.chunker import chunk_document
from hubcontext.jobs.tracker import BatchStatusTracker
from hubcontext.models import BatchStatus, BatchUpdate, Document, DocumentSpec, utcnow
from hubcontext.retrieval.cache import ContextCache
from hubcontext.stores.docstore import DocStore
from hubcontext.stores.vectorstore import VectorStore

log = logging.getLogger(__name__)


def _validate(spec: DocumentSpec) -> None:
    if not spec.title.strip():
        raise InvalidInput("Document title is required")
    if not spec.text.strip():
        raise InvalidInput(f"Document '{spec.title}' has no text")
    if not spec.owner_id:
        raise InvalidInput(f"Document '{spec.title}' has no owner")


class IngestionPipeline:
    def __init__(
        self,
        docstore: DocStore,
        vectorstore: VectorStore,
        tracker: BatchStatusTracker,
        cache: ContextCache,
        *,
        profile: LLMProfile | None = None,
        chunker: ChunkerConfig | None = None,
    ):
        self.docstore = docstore
        self.vectorstore = vectorstore
        self.tracker = tracker
        self.cache = cache
        self.profile = profile
        self.chunker = chunker or ChunkerConfig()
        self._tasks: set[asyncio.Task] = set()

    # -- Fire-and-forget entry points -----------------------------------------

    async def process(self, spec: DocumentSpec, *, metadata: dict | None = None) -> str:
        """Start ingesting one document; returns the batch id."""
        return await self.process_batch([spec], metadata=metadata)

    async def process_batch(self, specs: list[DocumentSpec], *, metadata: dict | None = None) -> str:
        """Start ingesting several documents as one batch; returns the batch id."""
        if not specs:
            raise InvalidInput("A batch needs at least one document")
        for spec in specs:
            _validate(spec)

        batch_meta = {"titles": [s.title for s in specs], **(metadata or {})}
        job = self.tracker.create_batch(batch_meta, total_items=len(specs))

        task = asyncio.create_task(self.run_batch(job.batch_id, specs), name=f"batch-{job.batch_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job.batch_id

    async def wait_idle(self) -> None:
        """Wait for every batch started by this pipeline to finish."""
        while pending := [t for t in self._tasks if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    # -- Work ----------------------------------------------------------------

    async def run_batch(self, batch_id: str, specs: list[DocumentSpec]) -> None:
        """Process ``specs`` and drive the batch to a terminal state.

        Per-document errors are recorded and the batch carries on. Anything
        else (cancellation, a failed status write) marks the batch failed
        and propagates.
        """
        processed = errors = 0
        doc_ids: list[str] = []
        failures: list[dict] = []
        try:
            self.tracker.update_status(batch_id, BatchUpdate(status=BatchStatus.RUNNING))
            for index, spec in enumerate(specs):
                try:
                    doc = await self.ingest_document(spec)
                    doc_ids.append(doc.doc_id)
                except Exception as exc:
                    errors += 1
                    failures.append({"index": index, "title": spec.title, "error": str(exc)})
                    log.error("Failed to ingest '%s': %s", spec.title, exc)
                processed += 1
                self.tracker.update_status(
                    batch_id, BatchUpdate(processed_items=processed, error_count=errors)
                )

            final = BatchStatus.FAILED if errors == len(specs) else BatchStatus.SUCCEEDED
            self.tracker.update_status(
                batch_id,
                BatchUpdate(
                    status=final,
                    metadata={
                        "document_ids": doc_ids,
                        "failures": failures,
                        "completed_with_errors": 0 < errors < len(specs),
                    },
                ),
            )
        except asyncio.CancelledError:
            self._mark_failed(batch_id, "cancelled", doc_ids)
            raise
        except Exception as exc:
            log.exception("Batch %s aborted", batch_id)
            self._mark_failed(batch_id, str(exc), doc_ids)
            raise
        log.info("Batch %s finished: %d processed, %d failed", batch_id, processed, errors)

    def _mark_failed(self, batch_id: str, error: str, doc_ids: list[str]) -> None:
        try:
            self.tracker.update_status(
                batch_id,
                BatchUpdate(
                    status=BatchStatus.FAILED,
                    metadata={"error": error, "document_ids": doc_ids},
                ),
            )
        except Exception:
            log.exception("Could not mark batch %s as failed", batch_id)

    async def ingest_document(self, spec: DocumentSpec) -> Document:
        """Chunk, embed and store one document; replaces earlier chunks on re-ingestion."""
        _validate(spec)

        existing = self.docstore.get_document(spec.doc_id) if spec.doc_id else None
        doc = Document(
            title=spec.title,
            text=spec.text,
            file_type=spec.file_type,
            hub_areas=spec.hub_areas,
            metadata=spec.metadata,
            owner_id=existing.owner_id if existing else spec.owner_id,
        )
        if spec.doc_id:
            doc.doc_id = spec.doc_id
        if existing:
            doc.created_at = existing.created_at
            doc.updated_at = utcnow()

        chunks = chunk_document(
            doc,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )
        log.info("Ingesting '%s': %d chunk(s)", doc.title, len(chunks))

        # Nothing is written until the embeddings are in hand.
        embeddings = await llm.embed([c.text for c in chunks], profile=self.profile)

        if existing:
            self.docstore.delete_doc_chunks(doc.doc_id)
            self.vectorstore.delete_by_doc_id(doc.doc_id)

        self.docstore.upsert_document(doc)
        self.docstore.upsert_chunks(chunks)
        self.vectorstore.upsert_chunks(doc, chunks, embeddings)
        self.cache.invalidate(doc.doc_id)
        return doc
