"""Tests for hubcontext.access.audit."""

from __future__ import annotations

import sqlite3

import pytest

from hubcontext.access.audit import AuditLog
from hubcontext.models import AccessAuditEntry, AuditAction


@pytest.fixture
def audit(db_path):
    log = AuditLog(db_path)
    yield log
    log.close()


def _entry(action: AuditAction, doc_id: str = "doc-1", user_id: str = "bob") -> AccessAuditEntry:
    return AccessAuditEntry(doc_id=doc_id, user_id=user_id, action=action)


def test_entries_keep_write_order(audit):
    audit.append(_entry(AuditAction.PERMISSION_CHECK))
    audit.append(_entry(AuditAction.ACCESS_DENIED))
    audit.append(_entry(AuditAction.PERMISSION_CHECK, doc_id="doc-2"))

    actions = [e.action for e in audit.entries()]
    assert actions == [
        AuditAction.PERMISSION_CHECK,
        AuditAction.ACCESS_DENIED,
        AuditAction.PERMISSION_CHECK,
    ]


def test_entries_filter(audit):
    audit.append(_entry(AuditAction.PERMISSION_CHECK, user_id="bob"))
    audit.append(_entry(AuditAction.PERMISSION_CHECK, user_id="carol"))
    audit.append(_entry(AuditAction.ACCESS_GRANTED, user_id="carol"))

    assert len(audit.entries(user_id="carol")) == 2
    assert len(audit.entries(action=AuditAction.PERMISSION_CHECK)) == 2
    assert len(audit.entries(limit=1)) == 1


def test_metadata_round_trips(audit):
    audit.append(
        AccessAuditEntry(
            doc_id="doc-1",
            user_id="bob",
            action=AuditAction.ACCESS_GRANTED,
            metadata={"permission_source": "role_based"},
        )
    )
    assert audit.entries()[0].metadata == {"permission_source": "role_based"}


def test_update_is_refused(audit):
    audit.append(_entry(AuditAction.PERMISSION_CHECK))
    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        audit._conn.execute("UPDATE access_audit_log SET action = 'access_granted'")


def test_delete_is_refused(audit):
    audit.append(_entry(AuditAction.PERMISSION_CHECK))
    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        audit._conn.execute("DELETE FROM access_audit_log")
    assert len(audit.entries()) == 1
