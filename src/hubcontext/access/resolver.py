"""Permission resolution: ownership, then explicit grants, then role grants.

Every evaluation appends a ``permission_check`` audit entry before any
lookup and exactly one ``access_granted``/``access_denied`` entry before
returning. Lookup or audit failures raise ResolutionError, which callers
must treat as a denial.
"""

from __future__ import annotations

import logging
from datetime import datetime

from hubcontext.access.audit import AuditLog
from hubcontext.access.grants import GrantStore
from hubcontext.errors import InvalidInput, ResolutionError
from hubcontext.models import (
    AccessAuditEntry,
    AuditAction,
    PermissionBasis,
    PermissionDecision,
    PermissionGrant,
    PermissionLevel,
    utcnow,
)
from hubcontext.stores.docstore import DocStore

log = logging.getLogger(__name__)


def _strongest(grants: list[PermissionGrant], now: datetime) -> PermissionGrant | None:
    """Highest-level grant among the non-expired ones."""
    live = [g for g in grants if not g.is_expired(now)]
    if not live:
        return None
    return max(live, key=lambda g: g.level.rank)


class PermissionResolver:
    def __init__(self, docstore: DocStore, grants: GrantStore, audit: AuditLog):
        self.docstore = docstore
        self.grants = grants
        self.audit = audit

    def resolve(
        self,
        doc_id: str,
        user_id: str,
        requested_level: PermissionLevel | str = PermissionLevel.READ,
    ) -> PermissionDecision:
        """Decide whether ``user_id`` may act on ``doc_id`` at ``requested_level``."""
        if not doc_id or not user_id:
            raise InvalidInput("Document ID and user ID are required")
        try:
            level = PermissionLevel(requested_level)
        except ValueError:
            raise InvalidInput(f"Unknown permission level '{requested_level}'") from None

        self._append(doc_id, user_id, AuditAction.PERMISSION_CHECK, {"permission_level": level.value})

        try:
            basis = self._evaluate(doc_id, user_id, level)
        except Exception as exc:
            log.error("Permission lookup failed for %s on %s: %s", user_id, doc_id, exc)
            self._record_failure(doc_id, user_id, level, exc)
            raise ResolutionError(
                f"Permission lookup failed: {exc}",
                details={"doc_id": doc_id, "user_id": user_id},
            ) from exc

        allowed = basis.permission_source != "none"
        action = AuditAction.ACCESS_GRANTED if allowed else AuditAction.ACCESS_DENIED
        self._append(
            doc_id,
            user_id,
            action,
            {"permission_level": level.value, **basis.model_dump(mode="json")},
        )
        log.debug(
            "Permission %s for %s on %s (%s, source=%s)",
            "granted" if allowed else "denied", user_id, doc_id, level.value, basis.permission_source,
        )
        return PermissionDecision(allowed=allowed, basis=basis)

    def check(
        self,
        doc_id: str,
        user_id: str,
        requested_level: PermissionLevel | str = PermissionLevel.READ,
    ) -> bool:
        """Boolean form of resolve(); resolution errors count as denied."""
        try:
            return self.resolve(doc_id, user_id, requested_level).allowed
        except ResolutionError:
            return False

    # -- Internals -----------------------------------------------------------

    def _evaluate(self, doc_id: str, user_id: str, level: PermissionLevel) -> PermissionBasis:
        basis = PermissionBasis(requested_level=level)

        doc = self.docstore.get_document(doc_id)
        if doc is None:
            basis.document_missing = True
            return basis

        if doc.owner_id is not None and doc.owner_id == user_id:
            basis.is_owner = True
            basis.permission_source = "ownership"
            return basis

        now = utcnow()

        # A live user-specific grant is authoritative, even when role grants are higher.
        explicit = _strongest(self.grants.user_grants(doc_id, user_id), now)
        if explicit is not None:
            basis.has_explicit_permission = True
            basis.granted_level = explicit.level
            if explicit.level.satisfies(level):
                basis.permission_source = "user_direct"
            return basis

        roles = self.grants.roles_for_user(user_id)
        role_grant = _strongest(self.grants.role_grants(doc_id, roles), now)
        if role_grant is not None:
            basis.has_role_permission = True
            basis.granted_level = role_grant.level
            if role_grant.level.satisfies(level):
                basis.permission_source = "role_based" if role_grant.role else "public"
        return basis

    def _append(self, doc_id: str, user_id: str, action: AuditAction, metadata: dict) -> None:
        metadata = {**metadata, "checked_at": utcnow().isoformat()}
        try:
            self.audit.append(
                AccessAuditEntry(doc_id=doc_id, user_id=user_id, action=action, metadata=metadata)
            )
        except Exception as exc:
            log.error("Audit write failed (%s) for %s on %s: %s", action.value, user_id, doc_id, exc)
            raise ResolutionError(
                f"Audit write failed: {exc}",
                details={"doc_id": doc_id, "user_id": user_id, "action": action.value},
            ) from exc

    def _record_failure(self, doc_id: str, user_id: str, level: PermissionLevel, exc: Exception) -> None:
        """Best-effort denied outcome for a failed lookup."""
        try:
            self._append(
                doc_id,
                user_id,
                AuditAction.ACCESS_DENIED,
                {"permission_level": level.value, "permission_source": "error", "error": str(exc)},
            )
        except ResolutionError:
            log.error("Could not record failed permission check for %s on %s", user_id, doc_id)
