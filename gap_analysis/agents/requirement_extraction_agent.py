"""
Requirement Extraction Agent
Responsibility: turn reference-document chunks into a deduplicated list of
                normalized requirements (text, target plan section,
                importance, source section, keywords).

One LLM call per chunk, run concurrently under a semaphore.  A chunk whose
call fails or whose output cannot be parsed contributes no requirements; the
rest of the document is still extracted.  When no chunk yields a parseable
response the first error is raised, so callers never mistake an outage for an
empty document.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Iterable, Optional

from pydantic import BaseModel, field_validator

from gap_analysis.agents.base_agent import BaseAgent, load_prompt
from gap_analysis.errors import MalformedModelOutputError, ModelGatewayError
from gap_analysis.models.enums import AgentName, Importance
from gap_analysis.models.schemas import Chunk, DocumentRecord, Requirement
from gap_analysis.utils.json_parsing import Malformed

logger = logging.getLogger(__name__)

_PROMPT_FILE = "extraction_prompt.txt"
_MAX_KEYWORDS = 5


# ── LLM item shape ───────────────────────────────────────


class ExtractedItem(BaseModel):
    text: str
    section: str = "General"
    importance: Importance = Importance.IMPORTANT
    source_section: str = ""
    keywords: list[str] = []

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        text = " ".join(str(value or "").split())
        if not text:
            raise ValueError("empty requirement text")
        return text

    @field_validator("section", mode="before")
    @classmethod
    def _section(cls, value: Any) -> str:
        return str(value or "").strip() or "General"

    @field_validator("source_section", mode="before")
    @classmethod
    def _source_section(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("importance", mode="before")
    @classmethod
    def _importance(cls, value: Any) -> Importance:
        try:
            return Importance(str(value or "").strip().lower())
        except ValueError:
            return Importance.IMPORTANT

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            return []
        cleaned = [str(k).strip() for k in value if str(k).strip()]
        return cleaned[:_MAX_KEYWORDS]


# ── Pure helpers ─────────────────────────────────────────


def requirement_key(text: str) -> str:
    """Dedup key: case-insensitive, whitespace-trimmed text."""
    return text.strip().lower()


def deduplicate_requirements(requirements: Iterable[Requirement]) -> list[Requirement]:
    """Drop requirements whose key was already seen; first occurrence wins."""
    seen: set[str] = set()
    unique: list[Requirement] = []
    for req in requirements:
        key = requirement_key(req.text)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(req)
    return unique


def count_by_section(requirements: Iterable[Requirement]) -> dict[str, int]:
    return dict(Counter(req.section for req in requirements))


# ── Agent ────────────────────────────────────────────────


class RequirementExtractionAgent(BaseAgent):
    name = AgentName.REQUIREMENT_EXTRACTION
    tag = "EXTRACT"

    async def extract(self, chunks: list[Chunk], document: DocumentRecord) -> list[Requirement]:
        """Extract the deduplicated requirement set of one reference document."""
        chunks = [c for c in chunks if c.text.strip()]
        logger.info(f"[EXTRACT] Extracting from {len(chunks)} chunks of '{document.title or document.id}'")
        if not chunks:
            return []

        template = load_prompt(_PROMPT_FILE)
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_llm_calls))

        async def run(position: int, chunk: Chunk) -> tuple[list[Requirement], Optional[ModelGatewayError]]:
            async with semaphore:
                return await self._extract_chunk(template, position, len(chunks), chunk, document)

        per_chunk = await asyncio.gather(*(run(i, c) for i, c in enumerate(chunks, start=1)))

        errors = [error for _, error in per_chunk if error is not None]
        if len(errors) == len(per_chunk):
            first = next((e for e in errors if not isinstance(e, MalformedModelOutputError)), errors[0])
            logger.error(
                f"[EXTRACT] All {len(errors)} chunks failed for {document.id}: "
                f"{first.error_code.value}: {first.message}"
            )
            raise first
        if errors:
            logger.warning(f"[EXTRACT] {len(errors)}/{len(per_chunk)} chunks contributed nothing")

        all_requirements = [req for batch, _ in per_chunk for req in batch]
        unique = deduplicate_requirements(all_requirements)
        logger.info(
            f"[EXTRACT] Deduplicated: {len(all_requirements)} → {len(unique)} requirements "
            f"across {len(count_by_section(unique))} sections"
        )
        return unique

    async def _extract_chunk(
        self,
        template: str,
        position: int,
        total: int,
        chunk: Chunk,
        document: DocumentRecord,
    ) -> tuple[list[Requirement], Optional[ModelGatewayError]]:
        prompt = template.format(
            document_title=document.title or document.id,
            chunk_number=position,
            chunk_count=total,
            chunk_title=f" ({chunk.title})" if chunk.title else "",
            chunk_text=chunk.text,
        )

        try:
            raw = await self._generate(prompt, self.settings.extraction_temperature)
        except ModelGatewayError as exc:
            logger.warning(f"[EXTRACT] Chunk {position}/{total} skipped: {exc.error_code.value}: {exc.message}")
            return [], exc

        parsed = self._parse_items(raw, ExtractedItem)
        if isinstance(parsed, Malformed):
            logger.warning(f"[EXTRACT] Chunk {position}/{total} yielded no parseable requirements")
            return [], MalformedModelOutputError(
                f"Chunk {position}/{total} of {document.id}: {parsed.reason}"
            )

        requirements = [
            Requirement(
                text=item.text,
                section=item.section,
                importance=item.importance,
                source_section=item.source_section or (chunk.title or ""),
                keywords=item.keywords,
                source_document_ids=[document.id],
            )
            for item in parsed.value
        ]
        logger.debug(f"[EXTRACT] Chunk {position}/{total}: {len(requirements)} requirements")
        return requirements, None
