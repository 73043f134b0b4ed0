"""
In-memory stores — used in mock mode and by the tests.
Not shared across processes; nothing survives a restart.
"""

from __future__ import annotations

import logging
from typing import Optional

from gap_analysis.errors import DocumentNotFoundError
from gap_analysis.models.schemas import (
    AnalysisFinding,
    AnalysisReport,
    DocumentChunk,
    DocumentRecord,
    Requirement,
)
from gap_analysis.persistence.base import DocumentStore, ReportStore, RequirementStore
from gap_analysis.services.file_service import FileService

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Documents and chunks in dicts; raw files in memory or via FileService."""

    def __init__(self, file_service: Optional[FileService] = None):
        self._documents: dict[str, DocumentRecord] = {}
        self._chunks: dict[str, list[DocumentChunk]] = {}
        self._files: dict[tuple[str, str], bytes] = {}
        self._file_service = file_service

    # ── Seeding (upload side lives outside the pipeline) ─

    def add_document(
        self,
        document: DocumentRecord,
        chunks: Optional[list[DocumentChunk]] = None,
    ) -> None:
        self._documents[document.id] = document
        if chunks is not None:
            self._chunks[document.id] = list(chunks)

    def add_raw_file(self, bucket: str, path: str, content: bytes) -> None:
        if self._file_service is not None:
            self._file_service.save_file(bucket, path, content)
        else:
            self._files[(bucket, path)] = content

    # ── DocumentStore ────────────────────────────────────

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self._documents.get(document_id)

    async def get_document_chunks(self, document_id: str) -> list[DocumentChunk]:
        return sorted(self._chunks.get(document_id, []), key=lambda c: c.index)

    async def download_raw_file(self, bucket: str, path: str) -> bytes:
        if (bucket, path) in self._files:
            return self._files[(bucket, path)]
        if self._file_service is not None:
            return self._file_service.load_file(bucket, path)
        raise DocumentNotFoundError(f"File not found: {bucket}/{path}")


class InMemoryRequirementStore(RequirementStore):
    def __init__(self):
        self._requirements: dict[str, Requirement] = {}
        self._sources: dict[str, list[str]] = {}  # requirement_id → document ids
        self._mappings: list[tuple[str, str, str]] = []

    async def insert_requirement(self, requirement: Requirement) -> str:
        self._requirements[requirement.id] = requirement.model_copy(deep=True)
        self._sources.setdefault(requirement.id, [])
        for document_id in requirement.source_document_ids:
            await self.link_requirement_to_source(requirement.id, document_id)
        return requirement.id

    async def link_requirement_to_source(self, requirement_id: str, document_id: str) -> None:
        if requirement_id not in self._requirements:
            raise DocumentNotFoundError(f"Requirement not found: {requirement_id}")
        sources = self._sources.setdefault(requirement_id, [])
        if document_id not in sources:
            sources.append(document_id)

    async def get_requirements_for_documents(self, document_ids: list[str]) -> list[Requirement]:
        wanted = set(document_ids)
        result = []
        for req_id, req in self._requirements.items():
            sources = self._sources.get(req_id, [])
            if wanted.intersection(sources):
                result.append(req.model_copy(update={"source_document_ids": list(sources)}, deep=True))
        return result

    async def delete_requirements_for_document(self, document_id: str) -> int:
        orphaned = []
        for req_id, sources in self._sources.items():
            if document_id in sources:
                sources.remove(document_id)
                if not sources:
                    orphaned.append(req_id)
        for req_id in orphaned:
            del self._requirements[req_id]
            del self._sources[req_id]
        gone = set(orphaned)
        self._mappings = [m for m in self._mappings if m[0] not in gone and m[1] not in gone]
        logger.info(f"Deleted {len(orphaned)} requirements for document {document_id}")
        return len(orphaned)

    async def add_requirement_mapping(self, requirement_id: str, mapped_id: str, mapping_type: str) -> None:
        mapping = (requirement_id, mapped_id, mapping_type)
        if mapping not in self._mappings:
            self._mappings.append(mapping)

    def mappings(self) -> list[tuple[str, str, str]]:
        return list(self._mappings)


class InMemoryReportStore(ReportStore):
    def __init__(self):
        self._reports: list[AnalysisReport] = []
        self._findings: list[AnalysisFinding] = []

    async def insert_report(self, report: AnalysisReport) -> str:
        self._reports.append(report.model_copy(deep=True))
        return report.analysis_id

    async def insert_findings(self, findings: list[AnalysisFinding]) -> None:
        self._findings.extend(f.model_copy() for f in findings)

    async def get_latest_report(self, plan_id: str) -> Optional[AnalysisReport]:
        candidates = [
            (report.analyzed_at, position, report)
            for position, report in enumerate(self._reports)
            if report.plan_id == plan_id
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: (c[0], c[1]))[2].model_copy(deep=True)

    def findings_for(self, analysis_id: str) -> list[AnalysisFinding]:
        return [f for f in self._findings if f.analysis_id == analysis_id]

    def reports_for(self, plan_id: str) -> list[AnalysisReport]:
        return [r for r in self._reports if r.plan_id == plan_id]
