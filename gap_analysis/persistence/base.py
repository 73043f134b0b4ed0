"""
Store interfaces consumed by the pipeline.

Three collaborators, each with an in-memory implementation (mock mode,
tests) and a MongoDB implementation.  All methods are coroutines; store
failures surface as StoreUnavailableError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from gap_analysis.models.schemas import (
    AnalysisFinding,
    AnalysisReport,
    DocumentChunk,
    DocumentRecord,
    Requirement,
)


class DocumentStore(ABC):
    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[DocumentRecord]: ...

    @abstractmethod
    async def get_document_chunks(self, document_id: str) -> list[DocumentChunk]:
        """Chunks in index order; empty when the document was never chunked."""

    @abstractmethod
    async def download_raw_file(self, bucket: str, path: str) -> bytes: ...


class RequirementStore(ABC):
    @abstractmethod
    async def insert_requirement(self, requirement: Requirement) -> str: ...

    @abstractmethod
    async def link_requirement_to_source(self, requirement_id: str, document_id: str) -> None:
        """Idempotent: linking twice leaves one link."""

    @abstractmethod
    async def get_requirements_for_documents(self, document_ids: list[str]) -> list[Requirement]:
        """Requirements linked to any of *document_ids*, each once, in insertion order."""

    @abstractmethod
    async def delete_requirements_for_document(self, document_id: str) -> int:
        """
        Unlink *document_id* and delete requirements left with no source.
        Returns the number of requirements deleted.
        """

    @abstractmethod
    async def add_requirement_mapping(self, requirement_id: str, mapped_id: str, mapping_type: str) -> None: ...


class ReportStore(ABC):
    @abstractmethod
    async def insert_report(self, report: AnalysisReport) -> str: ...

    @abstractmethod
    async def insert_findings(self, findings: list[AnalysisFinding]) -> None: ...

    @abstractmethod
    async def get_latest_report(self, plan_id: str) -> Optional[AnalysisReport]:
        """Most recent by analyzed_at; ties go to the later insert."""
