"""
API routes — thin HTTP layer that delegates to the AnalysisOrchestrator.

Routes:
  GET    /health                                   → API health check
  POST   /api/references/{document_id}/process     → Extract requirements from a reference
  DELETE /api/references/{document_id}/requirements → Drop a reference's requirements
  POST   /api/references/reconcile                 → Group equivalent requirements across references
  POST   /api/plans/{plan_id}/analyze              → Run a gap analysis
  GET    /api/plans/{plan_id}/analysis             → Latest stored report
  GET    /api/plans/{plan_id}/thinking             → Thinking-process narrative for the latest report

Typed pipeline errors are turned into JSON bodies by the exception handler
registered in create_app().
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gap_analysis.config import get_settings
from gap_analysis.errors import DocumentNotFoundError
from gap_analysis.models.schemas import (
    AnalysisReport,
    ExtractionSummary,
    ReconciliationResult,
    ThinkingProcess,
)
from gap_analysis.orchestration.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
reference_router = APIRouter()
plan_router = APIRouter()


@lru_cache()
def get_orchestrator() -> AnalysisOrchestrator:
    """Process-wide orchestrator built from settings (overridable in tests)."""
    return AnalysisOrchestrator.from_settings(get_settings())


# ── Request / response schemas ───────────────────────────
class ReferenceSelection(BaseModel):
    reference_ids: list[str] = []


class DeleteRequirementsResponse(BaseModel):
    document_id: str
    deleted_requirements_count: int


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "strategy": settings.analysis_strategy,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Reference documents ──────────────────────────────────

@reference_router.post("/reconcile", response_model=ReconciliationResult)
async def reconcile_references(
    body: ReferenceSelection,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    logger.info(f"Reconcile requested for {len(body.reference_ids)} references")
    return await orchestrator.reconcile_requirements(body.reference_ids)


@reference_router.post("/{document_id}/process", response_model=ExtractionSummary)
async def process_reference(
    document_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    logger.info(f"Processing reference {document_id}")
    return await orchestrator.process_reference_document(document_id)


@reference_router.delete("/{document_id}/requirements", response_model=DeleteRequirementsResponse)
async def delete_reference_requirements(
    document_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    result: dict[str, Any] = await orchestrator.delete_reference_requirements(document_id)
    return DeleteRequirementsResponse(**result)


# ── Plans ────────────────────────────────────────────────

@plan_router.post("/{plan_id}/analyze", response_model=AnalysisReport)
async def analyze_plan(
    plan_id: str,
    body: ReferenceSelection,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    logger.info(f"Analysis requested for plan {plan_id} against {body.reference_ids}")
    return await orchestrator.analyze_plan(plan_id, body.reference_ids)


@plan_router.get("/{plan_id}/analysis", response_model=AnalysisReport)
async def get_analysis(
    plan_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    report = await orchestrator.get_latest_report(plan_id)
    if report is None:
        raise DocumentNotFoundError(f"No analysis found for plan {plan_id}")
    return report


@plan_router.get("/{plan_id}/thinking", response_model=ThinkingProcess)
async def get_thinking(
    plan_id: str,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_thinking_process(plan_id)
