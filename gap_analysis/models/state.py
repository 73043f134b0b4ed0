"""
LangGraph shared state for one analysis run.

Design rules:
  1. Each field is "owned" by one node (see comments).
  2. Nodes may READ any field but only WRITE to their owned fields.
  3. Every node transition is recorded in the audit trail.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .enums import AnalysisStatus, ErrorCode
from .schemas import (
    AnalysisReport,
    AuditEntry,
    Requirement,
    SectionBatch,
    SectionBatchResult,
)


class AnalysisGraphState(BaseModel):
    """The state dict passed through every node of the analysis graph."""

    # ── Run control ──────────────────────────────────────
    status: AnalysisStatus = AnalysisStatus.IDLE
    current_stage: str = ""
    error_code: Optional[ErrorCode] = None
    error_message: str = ""
    state_version: int = 0

    # ── Request (owner: orchestrator) ────────────────────
    plan_id: str = ""
    reference_document_ids: list[str] = []
    strategy: str = ""

    # ── fetch_plan_content ───────────────────────────────
    plan_title: str = ""
    plan_type: str = ""
    plan_text: str = ""

    # ── fetch_requirements ───────────────────────────────
    requirements: list[Requirement] = Field(default_factory=list)
    batches: list[SectionBatch] = Field(default_factory=list)

    # ── check_compliance / evaluate_quality ──────────────
    batch_results: list[SectionBatchResult] = Field(default_factory=list)

    # ── aggregate / store ────────────────────────────────
    report: Optional[AnalysisReport] = None
    report_id: str = ""

    # ── Audit trail (append-only) ────────────────────────
    audit_trail: list[AuditEntry] = Field(default_factory=list)

    # ── Helper ───────────────────────────────────────────

    def add_audit(self, stage: str, action: str, details: str = "") -> None:
        self.state_version += 1
        self.audit_trail.append(
            AuditEntry(
                stage=stage,
                action=action,
                details=details,
                state_version=self.state_version,
            )
        )

    def fail(self, code: ErrorCode, message: str) -> None:
        self.status = AnalysisStatus.FAILED
        self.error_code = code
        self.error_message = message
