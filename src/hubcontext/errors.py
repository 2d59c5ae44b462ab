"""Exception taxonomy shared by the retrieval, access and batch layers."""

from __future__ import annotations


class HubContextError(Exception):
    """Base exception for all hubcontext errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(HubContextError):
    """Rejected before any external call (empty query, missing field)."""


class ProviderError(HubContextError):
    """An embedding, vector or pipeline vendor call failed."""


class ResolutionError(HubContextError):
    """A lookup or audit write failed during a permission check.

    Callers must treat this as a denial.
    """


class StaleTransition(HubContextError):
    """A batch status update would move a job backward or out of a terminal state."""

    def __init__(self, batch_id: str, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Stale transition for batch {batch_id}: {from_status} -> {to_status}",
            details={"batch_id": batch_id, "from_status": from_status, "to_status": to_status},
        )


class NotFound(HubContextError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(
            f"{kind} not found: {identifier}",
            details={"kind": kind, "identifier": identifier},
        )


class DocumentNotFound(NotFound):
    def __init__(self, document_id: str) -> None:
        super().__init__("Document", document_id)


class BatchNotFound(NotFound):
    def __init__(self, batch_id: str) -> None:
        super().__init__("Batch", batch_id)


class DocumentInUse(HubContextError):
    """Raised when deleting a document that permission grants still reference."""
