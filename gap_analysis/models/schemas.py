"""
Reusable data schemas for the records that flow through the pipeline.
Each schema is a clearly-bounded data object produced by one stage.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from .enums import DocumentType, ErrorCode, Importance, QualityRating

DEFAULT_QUALITY_ISSUE = "No specific issues identified"
DEFAULT_QUALITY_SUGGESTION = "No specific improvements suggested"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_requirement_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12].upper()}"


def new_analysis_id() -> str:
    return f"ANL-{uuid.uuid4().hex[:12].upper()}"


# ── Documents (external document store) ──────────────────


class DocumentRecord(BaseModel):
    """A plan or reference document as held by the document store."""
    id: str
    type: DocumentType
    subtype: str = ""
    title: str = ""
    file_url: str = ""  # path of the raw upload inside its bucket
    metadata: dict[str, Any] = {}


class DocumentChunk(BaseModel):
    content: str
    metadata: dict[str, Any] = {}
    index: int = 0


# ── Chunking ─────────────────────────────────────────────


class ChunkOptions(BaseModel):
    max_chunk_size: int = 2000
    min_chunk_size: int = 400
    chunk_overlap: int = 200
    preserve_headers: bool = True

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkOptions":
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if self.min_chunk_size < 0 or self.chunk_overlap < 0:
            raise ValueError("min_chunk_size and chunk_overlap must not be negative")
        if self.chunk_overlap >= self.max_chunk_size:
            raise ValueError("chunk_overlap must be smaller than max_chunk_size")
        return self

    @classmethod
    def adaptive(cls, text_length: int, preserve_headers: bool = True) -> "ChunkOptions":
        """Size-tiered defaults: bigger documents get bigger chunks."""
        size_kb = text_length / 1024
        if size_kb < 100:
            sizes = (3000, 500, 150)
        elif size_kb < 500:
            sizes = (5000, 1000, 200)
        elif size_kb < 2000:
            sizes = (8000, 2000, 300)
        else:
            sizes = (10000, 3000, 400)
        return cls(
            max_chunk_size=sizes[0],
            min_chunk_size=sizes[1],
            chunk_overlap=sizes[2],
            preserve_headers=preserve_headers,
        )


class Chunk(BaseModel):
    index: int
    text: str
    kind: str = "section"  # document | section | paragraph
    title: Optional[str] = None


# ── Requirements ─────────────────────────────────────────


class Requirement(BaseModel):
    """A single normalized compliance rule extracted from a reference document."""
    id: str = Field(default_factory=new_requirement_id)
    text: str
    section: str = "General"
    importance: Importance = Importance.IMPORTANT
    source_section: str = ""
    keywords: list[str] = []
    source_document_ids: list[str] = []


class ExtractionSummary(BaseModel):
    document_id: str
    requirements_count: int = 0
    requirements_by_section: dict[str, int] = {}


class ReconciliationResult(BaseModel):
    reference_ids: list[str] = []
    sections_processed: int = 0
    mappings_found: int = 0
    groups: list[list[str]] = []


# ── Findings ─────────────────────────────────────────────


class ComplianceFinding(BaseModel):
    requirement_id: str
    analysis_id: Optional[str] = None
    is_present: bool = False
    location: Optional[str] = None
    evidence: Optional[str] = None

    @model_validator(mode="after")
    def _clear_when_absent(self) -> "ComplianceFinding":
        if not self.is_present:
            self.location = None
            self.evidence = None
        return self

    @classmethod
    def not_present(cls, requirement_id: str) -> "ComplianceFinding":
        return cls(requirement_id=requirement_id, is_present=False)


class QualityFinding(BaseModel):
    requirement_id: str
    quality_rating: QualityRating = QualityRating.ADEQUATE
    issues: list[str] = []
    suggestions: list[str] = []

    @classmethod
    def placeholder(cls, requirement_id: str) -> "QualityFinding":
        return cls(
            requirement_id=requirement_id,
            quality_rating=QualityRating.ADEQUATE,
            issues=[DEFAULT_QUALITY_ISSUE],
            suggestions=[DEFAULT_QUALITY_SUGGESTION],
        )


class AnalysisFinding(BaseModel):
    """Persisted per-requirement row: compliance merged with quality."""
    analysis_id: str
    requirement_id: str
    section: str = ""
    is_present: bool = False
    location: Optional[str] = None
    evidence: Optional[str] = None
    quality_rating: Optional[QualityRating] = None
    issues: list[str] = []
    recommendations: str = ""


class ComplianceOutcome(BaseModel):
    findings: list[ComplianceFinding] = []
    error_code: Optional[ErrorCode] = None
    error_message: str = ""


class QualityOutcome(BaseModel):
    findings: list[QualityFinding] = []
    error_code: Optional[ErrorCode] = None
    error_message: str = ""


# ── Section batches ──────────────────────────────────────


class SectionBatch(BaseModel):
    section: str
    requirements: list[Requirement] = []


class SectionBatchResult(BaseModel):
    batch: SectionBatch
    compliance: list[ComplianceFinding] = []
    quality: list[QualityFinding] = []
    quality_resolved: bool = False
    compliance_error: Optional[ErrorCode] = None
    quality_error: Optional[ErrorCode] = None
    error_message: str = ""

    @property
    def section(self) -> str:
        return self.batch.section

    def present_findings(self) -> list[ComplianceFinding]:
        return [f for f in self.compliance if f.is_present]


# ── Report ───────────────────────────────────────────────


class SectionScore(BaseModel):
    compliance: int = 0
    quality: int = 0
    requirements_total: int = 0
    requirements_present: int = 0


class ReportSummary(BaseModel):
    total_requirements: int = 0
    requirements_present: int = 0
    requirements_missing: int = 0
    sections_analyzed: int = 0


class MissingRequirement(BaseModel):
    requirement_id: str
    section: str = "Unknown"
    text: str = "Unknown requirement"
    importance: Optional[Importance] = None


class ImprovementSuggestion(BaseModel):
    requirement_id: str
    requirement_text: str = "Unknown requirement"
    section: str = "Unknown"
    quality_rating: QualityRating = QualityRating.ADEQUATE
    issues: list[str] = []
    suggestions: list[str] = []


class AnalysisReport(BaseModel):
    """Aggregated output of one analysis run. Never mutated once stored."""
    analysis_id: str = Field(default_factory=new_analysis_id)
    plan_id: str
    plan_title: str = ""
    plan_type: str = ""
    reference_document_ids: list[str] = []
    strategy: str = ""
    overall_compliance_score: int = 0
    overall_quality_score: int = 0
    section_scores: dict[str, SectionScore] = {}
    summary: ReportSummary = Field(default_factory=ReportSummary)
    missing_requirements: list[MissingRequirement] = []
    improvement_suggestions: list[ImprovementSuggestion] = []
    analyzed_at: datetime = Field(default_factory=_utcnow)


# ── Thinking process ─────────────────────────────────────


class ThinkingStep(BaseModel):
    type: str  # start | reference | missing | calculation | quality
    title: str
    description: str
    timestamp: Optional[datetime] = None
    details: dict[str, Any] = {}


class ThinkingProcess(BaseModel):
    steps: list[ThinkingStep] = []
    raw_data: AnalysisReport


# ── Audit ────────────────────────────────────────────────


class AuditEntry(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    stage: str
    action: str
    details: str = ""
    state_version: int = 0
