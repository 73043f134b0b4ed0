"""
Analysis Orchestrator — the operations the API and CLI call.

  process_reference_document(id)     chunks → requirements (replaces old set)
  analyze_plan(plan_id, ref_ids)     runs the analysis graph, returns the report
  get_thinking_process(plan_id)      narrative derived from the latest report
  get_latest_report(plan_id)         latest stored report or None
  reconcile_requirements(ref_ids)    cross-standard equivalence groups
  delete_reference_requirements(id)  drops a reference's requirements
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from gap_analysis.agents import ReconciliationAgent, RequirementExtractionAgent
from gap_analysis.agents.requirement_extraction_agent import count_by_section
from gap_analysis.config import Settings, get_settings
from gap_analysis.errors import (
    AnalysisValidationError,
    DocumentNotFoundError,
    GapAnalysisError,
    error_from_code,
)
from gap_analysis.models.enums import AnalysisStatus, DocumentType
from gap_analysis.models.schemas import (
    AnalysisReport,
    Chunk,
    ChunkOptions,
    DocumentRecord,
    ExtractionSummary,
    ReconciliationResult,
    Requirement,
    ThinkingProcess,
)
from gap_analysis.orchestration.graph import AnalysisPipeline, load_raw_text
from gap_analysis.orchestration.strategies import AnalysisStrategy, build_strategy
from gap_analysis.persistence.base import DocumentStore, ReportStore, RequirementStore
from gap_analysis.services.chunking_service import chunk_document
from gap_analysis.services.thinking_process import build_thinking_process

logger = logging.getLogger(__name__)

EQUIVALENT = "equivalent"


class AnalysisOrchestrator:
    def __init__(
        self,
        document_store: DocumentStore,
        requirement_store: RequirementStore,
        report_store: ReportStore,
        gateway: Any = None,
        strategy: Optional[AnalysisStrategy] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.document_store = document_store
        self.requirement_store = requirement_store
        self.report_store = report_store
        self.extraction_agent = RequirementExtractionAgent(gateway, self.settings)
        self.reconciliation_agent = ReconciliationAgent(gateway, self.settings)
        self.strategy = strategy or build_strategy(gateway=gateway, settings=self.settings)
        self.pipeline = AnalysisPipeline(
            document_store, requirement_store, report_store, self.strategy, self.settings
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, gateway: Any = None) -> "AnalysisOrchestrator":
        """Wire stores from configuration: in-memory in mock mode, MongoDB otherwise."""
        settings = settings or get_settings()
        if settings.mock_mode:
            from gap_analysis.persistence.memory_store import (
                InMemoryDocumentStore,
                InMemoryReportStore,
                InMemoryRequirementStore,
            )
            from gap_analysis.services.file_service import FileService

            logger.info("[MOCK] Using in-memory stores")
            return cls(
                InMemoryDocumentStore(FileService(settings.local_storage_path)),
                InMemoryRequirementStore(),
                InMemoryReportStore(),
                gateway=gateway,
                settings=settings,
            )

        from gap_analysis.persistence.mongo_client import MongoClient
        from gap_analysis.persistence.mongo_store import (
            MongoDocumentStore,
            MongoReportStore,
            MongoRequirementStore,
        )

        client = MongoClient(settings)
        return cls(
            MongoDocumentStore(client),
            MongoRequirementStore(client),
            MongoReportStore(client),
            gateway=gateway,
            settings=settings,
        )

    # ── Reference documents ──────────────────────────────

    async def process_reference_document(self, document_id: str) -> ExtractionSummary:
        """Extract requirements from a reference document, replacing any earlier set."""
        document = await self._get_document(document_id, DocumentType.REFERENCE)
        chunks = await self._reference_chunks(document)
        if not chunks:
            raise AnalysisValidationError(f"Reference document {document.id} has no content")

        logger.info(f"[EXTRACT] Processing reference '{document.title or document.id}' ({len(chunks)} chunks)")
        requirements = await self.extraction_agent.extract(chunks, document)

        replaced = await self.requirement_store.delete_requirements_for_document(document.id)
        if replaced:
            logger.info(f"[EXTRACT] Replaced {replaced} previously extracted requirements")
        for req in requirements:
            req_id = await self.requirement_store.insert_requirement(req)
            await self.requirement_store.link_requirement_to_source(req_id, document.id)

        summary = ExtractionSummary(
            document_id=document.id,
            requirements_count=len(requirements),
            requirements_by_section=count_by_section(requirements),
        )
        logger.info(
            f"[EXTRACT] Stored {summary.requirements_count} requirements for {document.id}: "
            f"{summary.requirements_by_section}"
        )
        return summary

    async def delete_reference_requirements(self, document_id: str) -> dict[str, Any]:
        if not document_id or not document_id.strip():
            raise AnalysisValidationError("A reference document ID is required")
        deleted = await self.requirement_store.delete_requirements_for_document(document_id)
        return {"document_id": document_id, "deleted_requirements_count": deleted}

    async def _reference_chunks(self, document: DocumentRecord) -> list[Chunk]:
        stored = await self.document_store.get_document_chunks(document.id)
        chunks = [
            Chunk(
                index=c.index,
                text=c.content,
                kind=str(c.metadata.get("type", "section")),
                title=c.metadata.get("title"),
            )
            for c in stored
            if c.content.strip()
        ]
        if chunks:
            return chunks

        try:
            text = await load_raw_text(self.document_store, document, self.settings.reference_bucket)
        except ValueError as exc:
            raise AnalysisValidationError(f"Cannot read reference document {document.id}: {exc}") from exc

        options = ChunkOptions(
            max_chunk_size=self.settings.chunk_max_size,
            min_chunk_size=self.settings.chunk_min_size,
            chunk_overlap=self.settings.chunk_overlap,
            preserve_headers=self.settings.chunk_preserve_headers,
        )
        return chunk_document(text, options)

    # ── Plan analysis ────────────────────────────────────

    async def analyze_plan(self, plan_id: str, reference_document_ids: list[str]) -> AnalysisReport:
        """Run one analysis and return the stored report."""
        if not plan_id or not plan_id.strip():
            raise AnalysisValidationError("A plan ID is required")
        reference_ids = _unique_ids(reference_document_ids)
        if not reference_ids:
            raise AnalysisValidationError("Select at least one reference document")

        final_state = await self.pipeline.run(plan_id.strip(), reference_ids)

        if final_state.get("status") == AnalysisStatus.FAILED:
            raise error_from_code(
                final_state.get("error_code") or "VALIDATION_ERROR",
                final_state.get("error_message", ""),
            )
        return AnalysisReport.model_validate(final_state["report"])

    async def get_latest_report(self, plan_id: str) -> Optional[AnalysisReport]:
        return await self.report_store.get_latest_report(plan_id)

    async def get_thinking_process(self, plan_id: str) -> ThinkingProcess:
        """Narrative for the latest report; makes no model calls."""
        report = await self.report_store.get_latest_report(plan_id)
        if report is None:
            raise DocumentNotFoundError(f"No analysis found for plan {plan_id}")
        return build_thinking_process(report)

    # ── Reconciliation ───────────────────────────────────

    async def reconcile_requirements(self, reference_document_ids: list[str]) -> ReconciliationResult:
        """
        Group equivalent requirements across reference standards.
        Best effort: store or model failures leave the affected part unreconciled.
        """
        reference_ids = _unique_ids(reference_document_ids)
        if len(reference_ids) < 2:
            raise AnalysisValidationError("At least two reference documents are required for reconciliation")

        result = ReconciliationResult(reference_ids=reference_ids)
        try:
            requirements = await self.requirement_store.get_requirements_for_documents(reference_ids)
        except GapAnalysisError as exc:
            logger.warning(f"[RECONCILE] Cannot load requirements: {exc.error_code.value}: {exc.message}")
            return result

        by_section: dict[str, list[Requirement]] = {}
        for req in requirements:
            by_section.setdefault(req.section, []).append(req)
        sections = {s: reqs for s, reqs in by_section.items() if len(reqs) > 1}
        result.sections_processed = len(sections)

        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_llm_calls))

        async def run(section: str, reqs: list[Requirement]) -> list[list[str]]:
            async with semaphore:
                return await self.reconciliation_agent.group_equivalents(section, reqs)

        per_section = await asyncio.gather(*(run(s, r) for s, r in sections.items()))

        index = {req.id: req for req in requirements}
        for groups in per_section:
            for group in groups:
                try:
                    await self._store_group(group, index)
                except GapAnalysisError as exc:
                    logger.warning(f"[RECONCILE] Group {group} not stored: {exc.error_code.value}: {exc.message}")
                    continue
                result.groups.append(group)

        result.mappings_found = len(result.groups)
        logger.info(
            f"[RECONCILE] {result.sections_processed} sections processed, "
            f"{result.mappings_found} equivalence groups stored"
        )
        return result

    async def _store_group(self, group: list[str], index: dict[str, Requirement]) -> None:
        for i, first in enumerate(group):
            for second in group[i + 1:]:
                await self.requirement_store.add_requirement_mapping(first, second, EQUIVALENT)

        sources = _unique_ids(doc_id for req_id in group for doc_id in index[req_id].source_document_ids)
        for req_id in group:
            for doc_id in sources:
                if doc_id not in index[req_id].source_document_ids:
                    await self.requirement_store.link_requirement_to_source(req_id, doc_id)

    # ── Helpers ──────────────────────────────────────────

    async def _get_document(self, document_id: str, expected: DocumentType) -> DocumentRecord:
        if not document_id or not document_id.strip():
            raise AnalysisValidationError("A document ID is required")
        document = await self.document_store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        if document.type != expected:
            raise AnalysisValidationError(
                f"Document {document_id} is a {document.type.value}, expected a {expected.value}"
            )
        return document


def _unique_ids(ids) -> list[str]:
    return list(dict.fromkeys(str(i).strip() for i in ids or [] if str(i).strip()))
