"""Answer generation over retrieved context, with [D1]-style citations."""

from __future__ import annotations

import logging
import time

from hubcontext import llm
from hubcontext.config import LLMProfile, PromptsConfig
from hubcontext.metrics import MetricsSink, NullMetricsSink
from hubcontext.models import Answer, ChunkMatch, Citation, ContextResult, PerformanceMetric

log = logging.getLogger(__name__)


def build_citations(matches: list[ChunkMatch], snippet_length: int = 300) -> list[Citation]:
    return [
        Citation(
            doc_id=m.doc_id,
            chunk_id=m.chunk_id,
            title=m.title,
            chunk_index=m.chunk_index,
            snippet=m.text[:snippet_length],
            relevance=m.similarity,
        )
        for m in matches
    ]


def build_context(citations: list[Citation]) -> str:
    """Format citations as a numbered context block."""
    parts = []
    for i, c in enumerate(citations, 1):
        source = c.title or c.doc_id
        parts.append(f"[D{i}] ({source}):\n{c.snippet}")
    return "\n\n".join(parts)


async def generate_response(
    query: str,
    context: ContextResult,
    *,
    profile: LLMProfile | None = None,
    prompts: PromptsConfig | None = None,
    history: list[dict] | None = None,
    snippet_length: int = 300,
    metrics: MetricsSink | None = None,
    user_id: str | None = None,
) -> Answer:
    """Answer ``query`` from an already retrieved (and permission-filtered) context."""
    prompts = prompts or PromptsConfig()
    metrics = metrics or NullMetricsSink()
    citations = build_citations(context.results, snippet_length)

    messages = [{"role": "system", "content": prompts.system_prompt}]
    if history:
        messages.extend(history)
    messages.append(
        {"role": "user", "content": f"Context:\n{build_context(citations)}\n\nQuestion: {query}"}
    )

    start = time.perf_counter()
    status, error = "success", None
    try:
        content = await llm.complete(messages, profile=profile)
    except Exception as exc:
        status, error = "error", str(exc)
        raise
    finally:
        try:
            metrics.record_performance(
                PerformanceMetric(
                    operation_type="response_generation",
                    duration_ms=round((time.perf_counter() - start) * 1000),
                    user_id=user_id,
                    document_count=len({c.doc_id for c in citations}),
                    status=status,
                    error_message=error,
                )
            )
        except Exception:
            log.exception("Failed to record response generation metrics")

    return Answer(content=content, citations=citations, source=context.source)
