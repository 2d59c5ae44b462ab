"""Tests for the hubcontext CLI: JSON mode, mocked embeddings."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from hubcontext.cli.app import app
from hubcontext.errors import ProviderError

runner = CliRunner()


async def _fake_embed(texts, **kwargs):
    return [[1.0] + [0.0] * 1535 for _ in texts]


@pytest.fixture
def mock_embed():
    with patch("hubcontext.llm.embed", new_callable=AsyncMock) as mock:
        mock.side_effect = _fake_embed
        yield mock


def _json(*args: str):
    result = runner.invoke(app, ["--json", *args])
    return result, json.loads(result.stdout) if result.stdout.strip() else None


def test_ingest_then_query(tmp_path, mock_embed):
    note = tmp_path / "goals.md"
    note.write_text("Our Q1 marketing goals are growth and retention.")

    result, data = _json("ingest", str(note), "--owner", "alice", "--hub-area", "Marketing")
    assert result.exit_code == 0, result.output
    assert data["batch"]["status"] == "succeeded"
    doc_id = data["batch"]["metadata"]["document_ids"][0]

    result, data = _json("query", "q1 marketing goals", "--user", "alice", "--hub-area", "marketing")
    assert result.exit_code == 0, result.output
    assert data["source"] == "live"
    assert [r["doc_id"] for r in data["results"]] == [doc_id]

    result, data = _json("query", "Q1 marketing  goals", "--user", "alice", "--hub-area", "marketing")
    assert data["source"] == "cache"


def test_ingest_reports_failures_per_file(tmp_path, mock_embed):
    for folder, text in (("q1", "Quarterly plan"), ("q2", "broken plan")):
        (tmp_path / folder).mkdir()
        (tmp_path / folder / "plan.md").write_text(text)

    async def _embed(texts, **kwargs):
        if any("broken" in t for t in texts):
            raise ProviderError("rate limited")
        return await _fake_embed(texts)

    mock_embed.side_effect = _embed
    result, data = _json("ingest", str(tmp_path / "q1"), str(tmp_path / "q2"), "--owner", "alice")
    assert result.exit_code == 0, result.output

    batch = data["batch"]
    assert batch["status"] == "succeeded"
    assert batch["metadata"]["completed_with_errors"] is True
    assert [(f["index"], f["title"]) for f in batch["metadata"]["failures"]] == [(1, "plan")]
    assert len(batch["metadata"]["document_ids"]) == 1


def test_access_grant_check_and_audit(tmp_path, mock_embed):
    note = tmp_path / "plan.txt"
    note.write_text("Sales plan")
    _, data = _json("ingest", str(note), "--owner", "alice")
    doc_id = data["batch"]["metadata"]["document_ids"][0]

    result, _ = _json("access", "check", doc_id, "--user", "bob")
    assert result.exit_code == 2

    result, data = _json("access", "grant", doc_id, "--role", "analyst", "--level", "read")
    assert result.exit_code == 0, result.output
    _json("access", "role", "bob", "analyst")

    result, data = _json("access", "check", doc_id, "--user", "bob", "--level", "write")
    assert result.exit_code == 2
    assert data["basis"]["has_role_permission"] is True

    result, data = _json("access", "audit", "--user", "bob")
    assert [e["action"] for e in data] == [
        "permission_check",
        "access_denied",
        "permission_check",
        "access_denied",
    ]


def test_grant_requires_one_grantee():
    result, data = _json("access", "grant", "doc-1", "--user", "bob", "--public")
    assert result.exit_code == 1
    assert data["error"] == "InvalidInput"


def test_batch_status_unknown():
    result, data = _json("batch", "status", "missing")
    assert result.exit_code == 1
    assert data["error"] == "BatchNotFound"


def test_cache_clear_needs_confirmation():
    result = runner.invoke(app, ["cache", "clear"])
    assert result.exit_code == 1


def test_metrics_summary():
    result, data = _json("metrics", "--timeframe", "day")
    assert result.exit_code == 0, result.output
    assert data["timeframe"] == "day"
