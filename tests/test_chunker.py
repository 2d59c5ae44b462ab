"""Tests for hubcontext.ingest.chunker."""

from __future__ import annotations

import pytest

from hubcontext.ingest.chunker import chunk_document
from hubcontext.models import Document


def _doc(text: str, **kwargs) -> Document:
    return Document(doc_id="doc1", title="t", text=text, **kwargs)


def test_short_text_single_chunk():
    """Text shorter than chunk_size should produce one chunk."""
    chunks = chunk_document(_doc("Hello world"), chunk_size=512)
    assert len(chunks) == 1
    assert chunks[0].text == "Hello world"
    assert chunks[0].start_char == 0
    assert chunks[0].end_char == 11


def test_empty_text():
    assert chunk_document(_doc(""), chunk_size=512) == []


def test_whitespace_only():
    assert chunk_document(_doc("   \n\n  "), chunk_size=512) == []


def test_paragraph_splitting():
    """Two paragraphs should be split at the paragraph boundary."""
    text = "First paragraph with some text.\n\nSecond paragraph with more text."
    chunks = chunk_document(_doc(text), chunk_size=40, chunk_overlap=0)
    assert [c.text for c in chunks] == [
        "First paragraph with some text.",
        "Second paragraph with more text.",
    ]


def test_chunk_offsets_locate_text():
    text = "Alpha.\n\nBravo.\n\nCharlie.\n\nDelta."
    chunks = chunk_document(_doc(text), chunk_size=15, chunk_overlap=0)
    for chunk in chunks:
        assert 0 <= chunk.start_char < chunk.end_char <= len(text)
        assert text[chunk.start_char:chunk.end_char].strip() == chunk.text


def test_chunks_have_sequential_indices():
    text = "A\n\nB\n\nC\n\nD\n\nE\n\nF"
    chunks = chunk_document(_doc(text), chunk_size=5, chunk_overlap=0)
    assert [c.index for c in chunks] == list(range(len(chunks)))


def test_long_text_covered_with_bounded_chunks():
    words = " ".join(f"word{i}" for i in range(400))
    chunks = chunk_document(_doc(words), chunk_size=100, chunk_overlap=20)
    assert all(len(c.text) <= 100 for c in chunks)
    assert "word0" in chunks[0].text
    assert "word399" in chunks[-1].text


def test_overlap_repeats_context():
    words = " ".join(f"w{i}" for i in range(100))
    chunks = chunk_document(_doc(words), chunk_size=60, chunk_overlap=20)
    assert len(chunks) > 1
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.start_char < prev.end_char
        assert nxt.start_char > prev.start_char


def test_doc_fields_propagated():
    chunks = chunk_document(_doc("Hello world", file_type="md", hub_areas=["Sales"]), chunk_size=512)
    assert all(c.doc_id == "doc1" for c in chunks)
    assert chunks[0].metadata == {"file_type": "md", "hub_areas": ["sales"]}


@pytest.mark.parametrize("size,overlap", [(0, 0), (100, 100), (100, -1)])
def test_rejects_bad_window(size, overlap):
    with pytest.raises(ValueError):
        chunk_document(_doc("Hello"), chunk_size=size, chunk_overlap=overlap)
