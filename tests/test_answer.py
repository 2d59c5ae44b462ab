"""Tests for hubcontext.retrieval.answer."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hubcontext.errors import ProviderError
from hubcontext.models import ChunkMatch, ContextResult, RetrievalSource
from hubcontext.retrieval.answer import build_citations, build_context, generate_response


@pytest.fixture
def context():
    return ContextResult(
        source=RetrievalSource.LIVE,
        results=[
            ChunkMatch(
                chunk_id="c1",
                doc_id="d1",
                text="This is a test snippet about Q1 goals.",
                chunk_index=0,
                similarity=0.95,
                title="Test Doc",
            ),
            ChunkMatch(
                chunk_id="c2",
                doc_id="d2",
                text="Another piece of relevant info.",
                chunk_index=1,
                similarity=0.82,
                title="Other Doc",
            ),
        ],
    )


def test_build_context(context):
    ctx = build_context(build_citations(context.results))
    assert "[D1] (Test Doc)" in ctx
    assert "[D2] (Other Doc)" in ctx
    assert "test snippet" in ctx


def test_citations_truncate_snippets(context):
    citations = build_citations(context.results, snippet_length=10)
    assert citations[0].snippet == "This is a "
    assert citations[0].relevance == 0.95


@pytest.mark.asyncio
async def test_generate_response_calls_llm(context):
    metrics = MagicMock()
    with patch("hubcontext.retrieval.answer.llm.complete", new_callable=AsyncMock) as mock_complete:
        mock_complete.return_value = "The goals are X [D1]."
        answer = await generate_response("What are the goals?", context, metrics=metrics, user_id="alice")

    assert answer.content == "The goals are X [D1]."
    assert [c.doc_id for c in answer.citations] == ["d1", "d2"]
    assert answer.source == RetrievalSource.LIVE

    messages = mock_complete.call_args.args[0]
    assert messages[0]["role"] == "system"
    assert "[D1]" in messages[-1]["content"]
    assert "What are the goals?" in messages[-1]["content"]

    metric = metrics.record_performance.call_args.args[0]
    assert metric.operation_type == "response_generation"
    assert metric.document_count == 2


@pytest.mark.asyncio
async def test_generate_response_includes_history(context):
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]
    with patch("hubcontext.retrieval.answer.llm.complete", new_callable=AsyncMock) as mock_complete:
        mock_complete.return_value = "ok"
        await generate_response("next?", context, history=history)
    messages = mock_complete.call_args.args[0]
    assert [m["content"] for m in messages[1:3]] == ["earlier", "reply"]


@pytest.mark.asyncio
async def test_generate_response_failure_recorded(context):
    metrics = MagicMock()
    with patch("hubcontext.retrieval.answer.llm.complete", new_callable=AsyncMock) as mock_complete:
        mock_complete.side_effect = ProviderError("down")
        with pytest.raises(ProviderError):
            await generate_response("q", context, metrics=metrics)
    assert metrics.record_performance.call_args.args[0].status == "error"
