"""Thin LiteLLM wrapper for the embedding and completion providers.

Reads model strings from config and forwards to LiteLLM. Any provider
failure surfaces as ProviderError; nothing here retries.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import litellm

from hubcontext.config import LLMProfile, get_settings
from hubcontext.errors import ProviderError

log = logging.getLogger(__name__)


def _profile(profile: LLMProfile | None) -> LLMProfile:
    return profile or get_settings().llm


async def complete(
    messages: list[dict],
    *,
    profile: LLMProfile | None = None,
    model: str | None = None,
    stream: bool = False,
    **kwargs,
) -> str | AsyncIterator[str]:
    """Chat completion using the profile's chat_model.

    When stream=True, returns an async iterator of string chunks.
    """
    cfg = _profile(profile)
    model = model or cfg.chat_model
    temperature = kwargs.pop("temperature", cfg.temperature)
    max_tokens = kwargs.pop("max_tokens", cfg.max_tokens)

    try:
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=stream,
            **kwargs,
        )
    except Exception as exc:
        raise ProviderError(f"Completion failed: {exc}", details={"model": model}) from exc

    if stream:

        async def _stream():
            async for chunk in response:
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta

        return _stream()

    return response.choices[0].message.content


async def embed(
    texts: list[str],
    *,
    profile: LLMProfile | None = None,
    model: str | None = None,
    batch_size: int = 128,
) -> list[list[float]]:
    """Embed texts using the profile's embed_model.

    Each text is cut to ``embed_max_chars`` and large inputs are sent in
    batches to stay within API limits.
    """
    cfg = _profile(profile)
    model = model or cfg.embed_model
    texts = [t[: cfg.embed_max_chars] for t in texts]

    all_embeddings: list[list[float]] = []
    total_batches = -(-len(texts) // batch_size)  # ceil division
    for i in range(0, len(texts), batch_size):
        batch = texts[i : i + batch_size]
        if total_batches > 1:
            log.info("Embedding batch %d/%d (%d texts)", i // batch_size + 1, total_batches, len(batch))
        try:
            response = await litellm.aembedding(model=model, input=batch)
        except Exception as exc:
            raise ProviderError(f"Embedding failed: {exc}", details={"model": model}) from exc
        all_embeddings.extend(item["embedding"] for item in response.data)
    return all_embeddings


async def embed_query(text: str, *, profile: LLMProfile | None = None) -> list[float]:
    """Embed a single query string."""
    vectors = await embed([text], profile=profile)
    if not vectors:
        raise ProviderError("Embedding provider returned no vectors")
    return vectors[0]
