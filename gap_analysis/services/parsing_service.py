"""
Parsing Service — plain-text extraction from raw uploads.

Used when a document has no stored chunks and its raw file must be read
instead.  Supports:
  • PDF via PyMuPDF (page text joined with blank lines)
  • DOCX via python-docx (non-empty paragraphs)
  • text / markdown / JSON / CSV decoded as UTF-8

Does NOT:
  • Detect headings by font (the chunker works on plain text)
  • OCR scanned pages
"""

from __future__ import annotations

import io
import logging
from pathlib import PurePosixPath

logger = logging.getLogger(__name__)

_TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".json", ".csv", ".text", ""}


class ParsingService:
    """Turn raw file bytes into text."""

    @staticmethod
    def extract_text(content: bytes, filename: str) -> str:
        """Extract text from *content*, dispatching on the file extension."""
        suffix = PurePosixPath(filename).suffix.lower()

        if suffix == ".pdf":
            text = ParsingService._parse_pdf(content)
        elif suffix == ".docx":
            text = ParsingService._parse_docx(content)
        elif suffix in _TEXT_SUFFIXES:
            text = content.decode("utf-8", errors="replace")
        else:
            raise ValueError(f"Unsupported file type: {suffix or filename}")

        logger.info(f"[PARSE] Extracted {len(text)} chars from {filename}")
        return text

    @staticmethod
    def _parse_pdf(content: bytes) -> str:
        """Extract page text from a PDF using PyMuPDF."""
        import fitz  # PyMuPDF

        with fitz.open(stream=content, filetype="pdf") as doc:
            pages = [page.get_text("text").strip() for page in doc]
        return "\n\n".join(p for p in pages if p)

    @staticmethod
    def _parse_docx(content: bytes) -> str:
        """Extract text from DOCX using python-docx."""
        from docx import Document

        doc = Document(io.BytesIO(content))
        return "\n".join(p.text for p in doc.paragraphs if p.text.strip())
