"""Document updates and deletes that keep vectors and cached context in step."""

from __future__ import annotations

import logging

from hubcontext.access.grants import GrantStore
from hubcontext.errors import DocumentInUse, DocumentNotFound, InvalidInput
from hubcontext.models import Document, utcnow
from hubcontext.retrieval.cache import ContextCache
from hubcontext.stores.docstore import DocStore
from hubcontext.stores.vectorstore import VectorStore

log = logging.getLogger(__name__)

_EDITABLE = {"title", "hub_areas", "metadata", "file_type"}


class DocumentLibrary:
    def __init__(
        self,
        docstore: DocStore,
        vectorstore: VectorStore,
        grants: GrantStore,
        cache: ContextCache,
    ):
        self.docstore = docstore
        self.vectorstore = vectorstore
        self.grants = grants
        self.cache = cache

    def get_document(self, doc_id: str) -> Document:
        doc = self.docstore.get_document(doc_id)
        if doc is None:
            raise DocumentNotFound(doc_id)
        return doc

    def list_documents(self, hub_area: str | None = None) -> list[Document]:
        return self.docstore.list_documents(hub_area=hub_area.strip().casefold() if hub_area else None)

    def create_document(self, doc: Document) -> Document:
        """Register a document without chunks; ingestion adds them later."""
        if not doc.title.strip():
            raise InvalidInput("Document title is required")
        if not doc.owner_id:
            raise InvalidInput("Document owner is required")
        self.docstore.upsert_document(doc)
        return doc

    def update_document(self, doc_id: str, **changes) -> Document:
        """Edit title, hub areas, metadata or file type.

        Text changes go through re-ingestion so chunks and vectors follow.
        """
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise InvalidInput(
                f"Cannot update document fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        current = self.get_document(doc_id)
        data = current.model_dump()
        data.update(changes, updated_at=utcnow())
        doc = Document.model_validate(data)

        self.docstore.upsert_document(doc)
        if doc.hub_areas != current.hub_areas and self.docstore.count_chunks(doc_id):
            # hub areas live in the vector payload, so refresh them there too
            self.vectorstore.set_hub_areas(doc_id, doc.hub_areas)
        self.cache.invalidate(doc_id)
        return doc

    def delete_document(self, doc_id: str, *, force: bool = False) -> None:
        """Remove a document, its chunks, vectors and cached results.

        Refuses while grants reference the document unless ``force`` is set,
        in which case the grants go too.
        """
        self.get_document(doc_id)
        grant_count = self.grants.count_for_doc(doc_id)
        if grant_count and not force:
            raise DocumentInUse(
                f"Document {doc_id} is referenced by {grant_count} grant(s)",
                details={"doc_id": doc_id, "grants": grant_count},
            )

        self.vectorstore.delete_by_doc_id(doc_id)
        self.docstore.delete_document(doc_id)
        self.cache.invalidate(doc_id)
        log.info("Deleted document %s (%d grant(s) removed)", doc_id, grant_count)
