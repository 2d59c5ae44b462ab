"""Shared domain models used across the system."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _clean_hub_areas(values: list[str]) -> list[str]:
    """Trimmed, casefolded, de-duplicated hub-area tags in their original order."""
    cleaned = (v.strip().casefold() for v in values)
    return list(dict.fromkeys(v for v in cleaned if v))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """A stored document owned by the user who created it."""

    doc_id: str = Field(default_factory=_new_id)
    title: str
    text: str
    file_type: str = "text"
    hub_areas: list[str] = []
    metadata: dict = {}
    owner_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("hub_areas")
    @classmethod
    def _normalize_hub_areas(cls, value: list[str]) -> list[str]:
        return _clean_hub_areas(value)


class Chunk(BaseModel):
    """A contiguous span of a document, the unit of retrieval."""

    chunk_id: str = Field(default_factory=_new_id)
    doc_id: str
    text: str
    index: int
    start_char: int
    end_char: int
    metadata: dict = {}


class DocumentSpec(BaseModel):
    """What a client submits for ingestion."""

    title: str
    text: str
    owner_id: str
    file_type: str = "text"
    hub_areas: list[str] = []
    metadata: dict = {}
    doc_id: str | None = None  # set to re-ingest an existing document

    @field_validator("hub_areas")
    @classmethod
    def _normalize_hub_areas(cls, value: list[str]) -> list[str]:
        return _clean_hub_areas(value)


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class PermissionLevel(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def satisfies(self, requested: PermissionLevel) -> bool:
        return self.rank >= requested.rank


_LEVEL_RANK = {PermissionLevel.READ: 0, PermissionLevel.WRITE: 1, PermissionLevel.ADMIN: 2}


class PermissionGrant(BaseModel):
    """A stored grant. No user_id means role-based; no role as well means everyone."""

    grant_id: str = Field(default_factory=_new_id)
    doc_id: str
    user_id: str | None = None
    role: str | None = None
    level: PermissionLevel = PermissionLevel.READ
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_role_based(self) -> bool:
        return self.user_id is None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


class AuditAction(str, Enum):
    PERMISSION_CHECK = "permission_check"
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"


class AccessAuditEntry(BaseModel):
    entry_id: str = Field(default_factory=_new_id)
    doc_id: str
    user_id: str
    action: AuditAction
    metadata: dict = {}
    created_at: datetime = Field(default_factory=utcnow)


class PermissionBasis(BaseModel):
    """Why a permission decision came out the way it did."""

    requested_level: PermissionLevel
    is_owner: bool = False
    has_explicit_permission: bool = False
    has_role_permission: bool = False
    granted_level: PermissionLevel | None = None
    permission_source: str = "none"  # ownership | user_direct | role_based | public | none
    document_missing: bool = False


class PermissionDecision(BaseModel):
    allowed: bool
    basis: PermissionBasis


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class RetrievalSource(str, Enum):
    CACHE = "cache"
    LIVE = "live"


class ChunkMatch(BaseModel):
    """One retrieved chunk with its parent document summary."""

    chunk_id: str
    doc_id: str
    text: str
    chunk_index: int
    similarity: float
    title: str = ""
    file_type: str = ""
    hub_areas: list[str] = []
    doc_created_at: datetime | None = None


class ContextResult(BaseModel):
    results: list[ChunkMatch]
    source: RetrievalSource
    fingerprint: str = ""


class ContextCacheEntry(BaseModel):
    fingerprint: str
    results: list[ChunkMatch]
    computed_at: datetime = Field(default_factory=utcnow)
    query: str = ""
    hub_area: str | None = None
    user_id: str | None = None
    hit_count: int = 0
    # documents whose chunks matched but were filtered out by permission
    filtered_doc_ids: list[str] = []

    @property
    def doc_ids(self) -> set[str]:
        return {m.doc_id for m in self.results} | set(self.filtered_doc_ids)


class Citation(BaseModel):
    """A citation pointing back to a source chunk."""

    doc_id: str
    chunk_id: str
    title: str
    chunk_index: int
    snippet: str
    relevance: float = 0.0


class Answer(BaseModel):
    content: str
    citations: list[Citation]
    source: RetrievalSource


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

class BatchStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.SUCCEEDED, BatchStatus.FAILED)


_STATUS_RANK = {
    BatchStatus.CREATED: 0,
    BatchStatus.RUNNING: 1,
    BatchStatus.SUCCEEDED: 2,
    BatchStatus.FAILED: 2,
}


class BatchJob(BaseModel):
    batch_id: str = Field(default_factory=_new_id)
    status: BatchStatus = BatchStatus.CREATED
    metadata: dict = {}
    total_items: int = 0
    processed_items: int = 0
    error_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class BatchUpdate(BaseModel):
    """Partial update for a batch; unset fields are left alone."""

    status: BatchStatus | None = None
    metadata: dict | None = None  # merged into the existing metadata
    total_items: int | None = None
    processed_items: int | None = None
    error_count: int | None = None


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class PerformanceMetric(BaseModel):
    operation_type: str = "context_retrieval"
    duration_ms: int
    cache_hit: bool = False
    hub_area: str | None = None
    user_id: str | None = None
    document_count: int = 0
    status: str = "success"
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class QualityMetric(BaseModel):
    query: str
    hub_area: str | None = None
    threshold: float
    match_count: int
    total_results: int
    avg_similarity: float = 0.0
    max_similarity: float = 0.0
    min_similarity: float = 0.0
    user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
