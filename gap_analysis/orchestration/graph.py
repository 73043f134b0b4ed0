"""
LangGraph state machine — one plan analysis run.

  fetch_plan_content → fetch_requirements → check_compliance
      → evaluate_quality (skipped when nothing is present)
      → aggregate → store → done

Every node can route to "failed".  A node fails the run by raising a
GapAnalysisError; the node wrapper records the error code on the state and
the transition functions send the run to the terminal "failed" node.
Batch-level model failures do not fail the run (each batch degrades to
default findings) unless every batch degraded.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from langgraph.graph import END, StateGraph

from gap_analysis.config import Settings, get_settings
from gap_analysis.errors import (
    AnalysisValidationError,
    DocumentNotFoundError,
    GapAnalysisError,
    NoRequirementsError,
    PlanContentUnavailableError,
    error_from_code,
)
from gap_analysis.models.enums import AnalysisStatus, DocumentType
from gap_analysis.models.schemas import DocumentRecord, Requirement, SectionBatch
from gap_analysis.models.state import AnalysisGraphState
from gap_analysis.orchestration.strategies import AnalysisStrategy
from gap_analysis.orchestration.transitions import (
    route_after_aggregate,
    route_after_check_compliance,
    route_after_evaluate_quality,
    route_after_fetch_plan_content,
    route_after_fetch_requirements,
    route_after_store,
)
from gap_analysis.persistence.base import DocumentStore, ReportStore, RequirementStore
from gap_analysis.services.parsing_service import ParsingService
from gap_analysis.services.report_builder import build_findings, build_report

logger = logging.getLogger(__name__)

StageFn = Callable[[AnalysisGraphState], Awaitable[str]]


# ── Pure helpers ─────────────────────────────────────────

def batch_by_section(requirements: list[Requirement], max_per_batch: int) -> list[SectionBatch]:
    """Group by section in first-seen order; split sections larger than *max_per_batch*."""
    by_section: dict[str, list[Requirement]] = {}
    for req in requirements:
        by_section.setdefault(req.section, []).append(req)

    size = max(1, max_per_batch)
    batches: list[SectionBatch] = []
    for section, reqs in by_section.items():
        for start in range(0, len(reqs), size):
            batches.append(SectionBatch(section=section, requirements=reqs[start:start + size]))
    return batches


async def load_raw_text(document_store: DocumentStore, document: DocumentRecord, bucket: str) -> str:
    """Download and extract a document's raw upload; empty when it has none."""
    if not document.file_url:
        return ""
    content = await document_store.download_raw_file(bucket, document.file_url)
    return ParsingService.extract_text(content, document.file_url)


# ── Pipeline ─────────────────────────────────────────────

class AnalysisPipeline:
    """Builds and runs the analysis graph over the given collaborators."""

    def __init__(
        self,
        document_store: DocumentStore,
        requirement_store: RequirementStore,
        report_store: ReportStore,
        strategy: AnalysisStrategy,
        settings: Optional[Settings] = None,
    ):
        self.document_store = document_store
        self.requirement_store = requirement_store
        self.report_store = report_store
        self.strategy = strategy
        self.settings = settings or get_settings()
        self._compiled = None

    # ── Build the graph ──────────────────────────────────

    def build_graph(self):
        """Construct and compile the analysis state machine."""
        graph = StateGraph(dict)

        graph.add_node("fetch_plan_content", self._node(
            "fetch_plan_content", AnalysisStatus.FETCHING_PLAN_CONTENT, self._fetch_plan_content))
        graph.add_node("fetch_requirements", self._node(
            "fetch_requirements", AnalysisStatus.FETCHING_REQUIREMENTS, self._fetch_requirements))
        graph.add_node("check_compliance", self._node(
            "check_compliance", AnalysisStatus.CHECKING_COMPLIANCE, self._check_compliance))
        graph.add_node("evaluate_quality", self._node(
            "evaluate_quality", AnalysisStatus.EVALUATING_QUALITY, self._evaluate_quality))
        graph.add_node("aggregate", self._node(
            "aggregate", AnalysisStatus.AGGREGATING, self._aggregate))
        graph.add_node("store", self._node(
            "store", AnalysisStatus.AGGREGATING, self._store))

        # Terminal nodes
        graph.add_node("done", done)
        graph.add_node("failed", failed)

        graph.set_entry_point("fetch_plan_content")

        graph.add_conditional_edges(
            "fetch_plan_content",
            route_after_fetch_plan_content,
            {"fetch_requirements": "fetch_requirements", "failed": "failed"},
        )
        graph.add_conditional_edges(
            "fetch_requirements",
            route_after_fetch_requirements,
            {"check_compliance": "check_compliance", "failed": "failed"},
        )
        graph.add_conditional_edges(
            "check_compliance",
            route_after_check_compliance,
            {"evaluate_quality": "evaluate_quality", "aggregate": "aggregate", "failed": "failed"},
        )
        graph.add_conditional_edges(
            "evaluate_quality",
            route_after_evaluate_quality,
            {"aggregate": "aggregate", "failed": "failed"},
        )
        graph.add_conditional_edges(
            "aggregate",
            route_after_aggregate,
            {"store": "store", "failed": "failed"},
        )
        graph.add_conditional_edges(
            "store",
            route_after_store,
            {"done": "done", "failed": "failed"},
        )

        graph.add_edge("done", END)
        graph.add_edge("failed", END)

        return graph.compile()

    @property
    def compiled(self):
        if self._compiled is None:
            self._compiled = self.build_graph()
        return self._compiled

    async def run(self, plan_id: str, reference_document_ids: list[str]) -> dict[str, Any]:
        """Run the graph for one plan and return the final state dict."""
        state = AnalysisGraphState(
            plan_id=plan_id,
            reference_document_ids=list(reference_document_ids),
            strategy=self.strategy.name.value,
        ).model_dump()

        logger.info("═" * 60)
        logger.info(f"  ANALYSIS STARTING — plan {plan_id} against {len(reference_document_ids)} reference(s)")
        logger.info("═" * 60)

        final_state = await self.compiled.ainvoke(state)

        logger.info("═" * 60)
        logger.info(f"  ANALYSIS FINISHED — status: {final_state.get('status')}")
        logger.info("═" * 60)
        return final_state

    # ── Node wrapper ─────────────────────────────────────

    def _node(self, name: str, status: AnalysisStatus, stage: StageFn):
        async def node(state: dict[str, Any]) -> dict[str, Any]:
            t0 = time.perf_counter()
            separator = "═" * 70
            logger.info(f"▶ [GRAPH] {name} STARTING")
            _log_state_summary("INPUT STATE", state)

            graph_state = AnalysisGraphState(**state)
            graph_state.status = status
            graph_state.current_stage = name

            try:
                details = await stage(graph_state)
            except GapAnalysisError as exc:
                elapsed = time.perf_counter() - t0
                graph_state.fail(exc.error_code, exc.message)
                graph_state.add_audit(stage=name, action="failed", details=f"{exc.error_code.value}: {exc.message}")
                logger.error(f"✘ [GRAPH] {name} FAILED after {elapsed:.3f}s: {exc.error_code.value}: {exc.message}")
                logger.info(f"{separator}\n")
                return graph_state.model_dump()
            except Exception as exc:
                logger.exception(f"✘ [GRAPH] {name} crashed: {exc}")
                raise

            graph_state.add_audit(stage=name, action="completed", details=details)
            elapsed = time.perf_counter() - t0
            logger.info(f"✔ [GRAPH] {name} COMPLETED in {elapsed:.3f}s {details}")

            out = graph_state.model_dump()
            _log_state_summary("OUTPUT STATE", out)
            _log_state_diff("STATE CHANGES", state, out)
            logger.info(f"{separator}\n")
            return out

        node.__name__ = name
        return node

    # ── Stages ───────────────────────────────────────────

    async def _fetch_plan_content(self, state: AnalysisGraphState) -> str:
        plan = await self.document_store.get_document(state.plan_id)
        if plan is None:
            raise DocumentNotFoundError(f"Plan not found: {state.plan_id}")
        if plan.type != DocumentType.PLAN:
            raise AnalysisValidationError(f"Document {plan.id} is a {plan.type.value}, not a plan")
        state.plan_title = plan.title
        state.plan_type = plan.subtype

        chunks = await self.document_store.get_document_chunks(plan.id)
        text = "\n\n".join(c.content for c in chunks if c.content.strip())
        source = f"{len(chunks)} chunks"

        if not text.strip():
            try:
                text = await load_raw_text(self.document_store, plan, self.settings.plan_bucket)
            except (DocumentNotFoundError, ValueError) as exc:
                raise PlanContentUnavailableError(f"Cannot read plan {plan.id}: {exc}") from exc
            source = "raw file"

        if not text.strip():
            raise PlanContentUnavailableError(f"Plan {plan.id} has no content")
        state.plan_text = text
        return f"({len(text)} chars from {source})"

    async def _fetch_requirements(self, state: AnalysisGraphState) -> str:
        requirements = await self.requirement_store.get_requirements_for_documents(
            state.reference_document_ids
        )
        if not requirements:
            raise NoRequirementsError(
                "No requirements found for the selected reference documents. "
                "Process the reference documents first."
            )
        state.requirements = requirements
        state.batches = batch_by_section(requirements, self.settings.max_requirements_per_batch)
        return f"({len(requirements)} requirements in {len(state.batches)} batches)"

    async def _check_compliance(self, state: AnalysisGraphState) -> str:
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_llm_calls))

        async def run(batch: SectionBatch):
            async with semaphore:
                return await self.strategy.check_compliance(state.plan_text, batch)

        results = await asyncio.gather(*(run(b) for b in state.batches))
        degraded = [r for r in results if r.compliance_error is not None]
        if results and len(degraded) == len(results):
            first = degraded[0]
            raise error_from_code(
                first.compliance_error,
                f"Compliance check failed for every section: {first.error_message}",
            )
        if degraded:
            logger.warning(
                f"[GRAPH] {len(degraded)}/{len(results)} batches degraded to default findings: "
                f"{', '.join(r.section for r in degraded)}"
            )
        state.batch_results = list(results)
        present = sum(len(r.present_findings()) for r in results)
        return f"({present} present across {len(results)} batches, {len(degraded)} degraded)"

    async def _evaluate_quality(self, state: AnalysisGraphState) -> str:
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_llm_calls))

        async def run(result):
            async with semaphore:
                return await self.strategy.evaluate_quality(state.plan_text, result)

        results = await asyncio.gather(*(run(r) for r in state.batch_results))
        state.batch_results = list(results)
        rated = sum(len(r.quality) for r in results)
        degraded = sum(1 for r in results if r.quality_error is not None)
        return f"({rated} ratings, {degraded} batches defaulted)"

    async def _aggregate(self, state: AnalysisGraphState) -> str:
        report = build_report(
            plan_id=state.plan_id,
            results=state.batch_results,
            plan_title=state.plan_title,
            plan_type=state.plan_type,
            reference_document_ids=state.reference_document_ids,
            strategy=state.strategy,
        )
        state.report = report
        return (
            f"(compliance={report.overall_compliance_score} quality={report.overall_quality_score} "
            f"missing={report.summary.requirements_missing})"
        )

    async def _store(self, state: AnalysisGraphState) -> str:
        if state.report is None:
            raise AnalysisValidationError("Nothing to store: aggregation produced no report")
        findings = build_findings(state.report, state.batch_results)
        # Findings first: a report row only exists once its findings do
        await self.report_store.insert_findings(findings)
        state.report_id = await self.report_store.insert_report(state.report)
        state.status = AnalysisStatus.STORED
        return f"(report {state.report_id}, {len(findings)} findings)"


# ── Terminal nodes ───────────────────────────────────────

def done(state: dict[str, Any]) -> dict[str, Any]:
    state["status"] = AnalysisStatus.DONE
    logger.info(f"Analysis done: report {state.get('report_id')}")
    return state


def failed(state: dict[str, Any]) -> dict[str, Any]:
    state["status"] = AnalysisStatus.FAILED
    logger.error(
        f"Analysis failed at {state.get('current_stage')}: "
        f"{state.get('error_code')}: {state.get('error_message')}"
    )
    return state


# ── Debug helpers (module-level) ─────────────────────────

def _log_state_summary(label: str, state: dict[str, Any]) -> None:
    """Log key names, non-empty values, and approximate sizes."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    lines = [f"  ┌─ {label}"]
    for key in sorted(state.keys()):
        val = state[key]
        if val is None or val == "" or val == [] or val == {}:
            lines.append(f"  │  {key}: <empty>")
        elif isinstance(val, str):
            lines.append(f"  │  {key}: str({len(val)} chars)")
        elif isinstance(val, list):
            lines.append(f"  │  {key}: list({len(val)} items)")
        elif isinstance(val, dict):
            lines.append(f"  │  {key}: dict({len(val)} keys)")
        else:
            lines.append(f"  │  {key}: {type(val).__name__} = {_truncate(val)}")
    lines.append(f"  └─ ({len(state)} keys total)")
    logger.debug("\n".join(lines))


def _log_state_diff(label: str, before: dict[str, Any], after: dict[str, Any]) -> None:
    """Log which keys changed between input and output state."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    changes: list[str] = []
    for key in sorted(set(before.keys()) | set(after.keys())):
        old = before.get(key)
        new = after.get(key)
        if old != new:
            changes.append(f"  │  {key}: {_truncate(old)} → {_truncate(new)}")
    if changes:
        logger.debug(f"  ┌─ {label}\n" + "\n".join(changes) + f"\n  └─ ({len(changes)} fields changed)")
    else:
        logger.debug(f"  ── {label}: no changes")


def _truncate(val: Any, max_len: int = 120) -> str:
    """Produce a short repr for debug logging."""
    if val is None:
        return "<None>"
    if isinstance(val, str):
        if len(val) > max_len:
            return repr(val[:max_len]) + f"…({len(val)} chars)"
        return repr(val)
    if isinstance(val, list):
        return f"list({len(val)} items)"
    if isinstance(val, dict):
        s = json.dumps(val, default=str)
        if len(s) > max_len:
            return s[:max_len] + f"…({len(s)} chars)"
        return s
    s = str(val)
    if len(s) > max_len:
        return s[:max_len] + "…"
    return s
