"""Boundary-aware text chunker.

Packs paragraphs, then lines, then sentences, then words into windows of at
most ``chunk_size`` characters, falling back to hard cuts. Consecutive
chunks share up to ``chunk_overlap`` characters of context.
"""

from __future__ import annotations

from hubcontext.models import Chunk, Document

_BOUNDARIES = ("\n\n", "\n", ". ", " ")


def chunk_document(
    doc: Document,
    *,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[Chunk]:
    """Split a document into ordered chunks with character offsets."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be between 0 and chunk_size")

    text = doc.text
    if not text.strip():
        return []

    return [
        Chunk(
            doc_id=doc.doc_id,
            text=text[start:end].strip(),
            index=index,
            start_char=start,
            end_char=end,
            metadata={"file_type": doc.file_type, "hub_areas": doc.hub_areas},
        )
        for index, (start, end) in enumerate(_windows(text, chunk_size, chunk_overlap))
    ]


def _windows(text: str, size: int, overlap: int) -> list[tuple[int, int]]:
    """(start, end) spans covering the non-blank parts of ``text``."""
    spans: list[tuple[int, int]] = []
    start = _skip_blank(text, 0)
    while start < len(text):
        end = _cut_point(text, start, size)
        if text[start:end].strip():
            spans.append((start, end))
        if end >= len(text):
            break
        next_start = _skip_blank(text, max(end - overlap, start + 1))
        if overlap:
            # begin the overlap on a word boundary
            space = text.find(" ", next_start, end)
            if space != -1:
                next_start = _skip_blank(text, space + 1)
        start = max(next_start, start + 1)
    return spans


def _cut_point(text: str, start: int, size: int) -> int:
    """End of the window starting at ``start``, preferring the coarsest boundary."""
    limit = start + size
    if limit >= len(text):
        return len(text)
    # a boundary in the first half of the window would make chunks too short
    floor = start + max(1, size // 2)
    for boundary in _BOUNDARIES:
        pos = text.rfind(boundary, floor, limit)
        if pos != -1:
            return pos + len(boundary.rstrip()) if boundary.strip() else pos
    return limit


def _skip_blank(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos
