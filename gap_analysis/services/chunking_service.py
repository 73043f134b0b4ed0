"""
Chunking Service — structure-aware splitting of document text.

chunk_document() is a pure function: no I/O, same output for the same
text and options.  It:
  • detects header lines (numbered sections, Section/Chapter/Part/Appendix/
    Title prefixes, ALL-CAPS labels ending in a colon)
  • keeps a header stack so each chunk is prefixed with its enclosing headers
  • packs paragraphs up to max_chunk_size, repeating chunk_overlap characters
    of the previous chunk at each size-driven boundary
  • merges sections shorter than min_chunk_size into the following one
  • sub-splits oversized paragraphs at raw offsets

Chunks are returned in document order and are never empty.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from gap_analysis.models.schemas import Chunk, ChunkOptions

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(
    r"^\s*(?:"
    r"(?P<number>\d+(?:\.\d+)*\.?)\s+\S"
    r"|(?:Section|Chapter|Part|Appendix|Title)\s+[\dA-Z]+[.:]?(?:\s|$)"
    r"|[A-Z][A-Z ]{2,}:"
    r")"
)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_MAX_HEADER_LEN = 120
_PARAGRAPH_SEP = "\n\n"


@dataclass
class _Header:
    text: str
    level: int


@dataclass
class _Section:
    headers: list[_Header]
    lines: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(self.lines).strip()


# ── Public API ───────────────────────────────────────────

def chunk_document(text: str, options: ChunkOptions | None = None) -> list[Chunk]:
    """Split *text* into ordered, bounded, non-empty chunks."""
    if options is None:
        options = ChunkOptions.adaptive(len(text or ""))

    if not text or not text.strip():
        return []

    if len(text) <= options.max_chunk_size:
        return [Chunk(index=0, text=text, kind="document")]

    if options.preserve_headers:
        sections = _split_sections(text)
        if any(s.headers for s in sections):
            chunks = _chunk_sections(sections, options)
        else:
            chunks = _chunk_paragraphs(text, options, kind="paragraph")
    else:
        chunks = _chunk_paragraphs(text, options, kind="paragraph")

    logger.debug(
        f"[CHUNK] {len(text)} chars → {len(chunks)} chunks "
        f"(max={options.max_chunk_size}, overlap={options.chunk_overlap})"
    )
    return chunks


def detect_header(line: str) -> _Header | None:
    """Return the header carried by *line*, or None for body text."""
    stripped = line.strip()
    if not stripped or len(stripped) > _MAX_HEADER_LEN:
        return None
    match = _HEADER_RE.match(stripped)
    if not match:
        return None
    number = match.group("number")
    level = number.rstrip(".").count(".") + 1 if number else 1
    return _Header(text=stripped, level=level)


# ── Section pass ─────────────────────────────────────────

def _split_sections(text: str) -> list[_Section]:
    sections: list[_Section] = [_Section(headers=[])]
    stack: list[_Header] = []
    for line in text.splitlines():
        header = detect_header(line)
        if header is None:
            sections[-1].lines.append(line)
            continue
        while stack and stack[-1].level >= header.level:
            stack.pop()
        stack.append(header)
        sections.append(_Section(headers=list(stack)))
    return sections


def _chunk_sections(sections: list[_Section], options: ChunkOptions) -> list[Chunk]:
    chunks: list[Chunk] = []
    group_headers: list[_Header] | None = None
    group_paragraphs: list[str] = []
    group_len = 0

    def flush() -> None:
        nonlocal group_paragraphs, group_len
        if group_paragraphs:
            _emit(chunks, group_headers or [], group_paragraphs, options)
        group_paragraphs = []
        group_len = 0

    for section in sections:
        paragraphs = _paragraphs(section.body)
        if group_headers is None:
            group_headers = section.headers
        elif group_len >= options.min_chunk_size:
            flush()
            group_headers = section.headers
        elif group_paragraphs:
            # Short section: fold it into the following one, header inline
            group_paragraphs.append(section.headers[-1].text)
        else:
            # Nothing collected yet: headers the new stack drops go inline
            group_paragraphs.extend(h.text for h in group_headers if h not in section.headers)
            group_headers = section.headers
        group_paragraphs.extend(paragraphs)
        group_len += sum(len(p) for p in paragraphs)

    if not group_paragraphs and group_headers:
        # Trailing header with no body
        group_headers, group_paragraphs = group_headers[:-1], [group_headers[-1].text]
    flush()
    return _reindex(chunks)


def _emit(
    chunks: list[Chunk],
    headers: list[_Header],
    paragraphs: list[str],
    options: ChunkOptions,
) -> None:
    prefix = "\n".join(h.text for h in headers)
    prefix = prefix + _PARAGRAPH_SEP if prefix else ""
    budget = max(options.max_chunk_size - len(prefix), options.max_chunk_size // 2)
    title = headers[0].text if headers else None

    for body in _pack(paragraphs, budget, options.chunk_overlap):
        chunks.append(Chunk(index=len(chunks), text=prefix + body, kind="section", title=title))


# ── Paragraph pass ───────────────────────────────────────

def _chunk_paragraphs(text: str, options: ChunkOptions, kind: str) -> list[Chunk]:
    bodies = _pack(_paragraphs(text), options.max_chunk_size, options.chunk_overlap)
    return [Chunk(index=i, text=body, kind=kind) for i, body in enumerate(bodies)]


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def _pack(paragraphs: list[str], budget: int, overlap: int) -> list[str]:
    """Greedy paragraph packing; every returned body fits *budget*."""
    overlap = min(overlap, budget // 2)
    bodies: list[str] = []
    current = ""

    for paragraph in paragraphs:
        pieces = [paragraph] if len(paragraph) <= budget else _split_raw(paragraph, budget, overlap)
        for piece in pieces:
            candidate = current + _PARAGRAPH_SEP + piece if current else piece
            if len(candidate) <= budget:
                current = candidate
                continue
            if current:
                bodies.append(current)
                tail = current[-overlap:].lstrip() if overlap else ""
                candidate = tail + _PARAGRAPH_SEP + piece if tail else piece
                current = candidate if len(candidate) <= budget else piece
            else:
                current = piece

    if current.strip():
        bodies.append(current)
    return bodies


def _split_raw(text: str, size: int, overlap: int) -> list[str]:
    step = max(size - overlap, 1)
    pieces: list[str] = []
    start = 0
    while start < len(text):
        piece = text[start:start + size]
        if piece.strip():
            pieces.append(piece)
        if start + size >= len(text):
            break
        start += step
    return pieces


def _reindex(chunks: list[Chunk]) -> list[Chunk]:
    return [c.model_copy(update={"index": i}) for i, c in enumerate(chunks)]
