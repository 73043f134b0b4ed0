"""
Gap Analysis — Main Entry Point

Run an operation directly (CLI):
    python -m gap_analysis process-reference REF-001
    python -m gap_analysis analyze PLAN-001 REF-001 REF-002
    python -m gap_analysis thinking PLAN-001

Run as an API server:
    python -m gap_analysis serve
    # or: uvicorn gap_analysis.api:app --reload --port 8000

Or import and run programmatically:
    from gap_analysis.orchestration import AnalysisOrchestrator
    report = await AnalysisOrchestrator.from_settings().analyze_plan("PLAN-001", ["REF-001"])
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from gap_analysis.config import get_settings
from gap_analysis.errors import GapAnalysisError
from gap_analysis.models.schemas import AnalysisReport
from gap_analysis.services.report_builder import classify_compliance, classify_quality
from gap_analysis.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def _orchestrator():
    from gap_analysis.orchestration.orchestrator import AnalysisOrchestrator

    return AnalysisOrchestrator.from_settings(get_settings())


def analyze(plan_id: str, reference_ids: list[str]) -> AnalysisReport:
    """Run one analysis and log a summary of the report."""
    settings = get_settings()
    logger.info("=" * 60)
    logger.info("  GAP ANALYSIS")
    logger.info(
        f"  Mode: {'MOCK' if settings.mock_mode else 'LIVE'} | Strategy: {settings.analysis_strategy} | "
        f"Started: {datetime.now(timezone.utc).isoformat()}"
    )
    logger.info("=" * 60)

    report = asyncio.run(_orchestrator().analyze_plan(plan_id, reference_ids))
    _print_summary(report)
    return report


def process_reference(document_id: str) -> None:
    summary = asyncio.run(_orchestrator().process_reference_document(document_id))
    logger.info(f"  Reference:      {summary.document_id}")
    logger.info(f"  Requirements:   {summary.requirements_count} extracted")
    for section, count in summary.requirements_by_section.items():
        logger.info(f"    {section}: {count}")


def thinking(plan_id: str) -> None:
    process = asyncio.run(_orchestrator().get_thinking_process(plan_id))
    for step in process.steps:
        logger.info(f"  [{step.type}] {step.title}")
        logger.info(f"      {step.description}")


def _print_summary(report: AnalysisReport) -> None:
    """Print a human-readable summary of the analysis report."""
    summary = report.summary
    compliance_level = classify_compliance(report.overall_compliance_score)
    quality_level = classify_quality(report.overall_quality_score)

    logger.info("")
    logger.info("-" * 60)
    logger.info("  ANALYSIS RESULT SUMMARY")
    logger.info("-" * 60)
    logger.info(f"  Analysis ID:    {report.analysis_id}")
    logger.info(f"  Plan:           {report.plan_title or report.plan_id}")
    logger.info(f"  References:     {', '.join(report.reference_document_ids)}")
    logger.info(f"  Compliance:     {report.overall_compliance_score}% ({compliance_level})")
    logger.info(f"  Quality:        {report.overall_quality_score}% ({quality_level})")
    logger.info(
        f"  Requirements:   {summary.requirements_present}/{summary.total_requirements} present, "
        f"{summary.requirements_missing} missing"
    )
    logger.info("-" * 60)

    for name, score in report.section_scores.items():
        logger.info(
            f"    {name}: {score.requirements_present}/{score.requirements_total} "
            f"compliance={score.compliance}% quality={score.quality}%"
        )
    for missing in report.missing_requirements[:10]:
        importance = missing.importance.value if missing.importance else "unknown"
        logger.info(f"    MISSING [{importance}] {missing.section}: {missing.text}")
    logger.info("")


def serve(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False) -> None:
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("gap_analysis.api:app", host=host, port=port, reload=reload)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gap-analysis", description="Plan gap analysis against reference standards")
    commands = parser.add_subparsers(dest="command", required=True)

    serve_cmd = commands.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.add_argument("--reload", action="store_true")

    process_cmd = commands.add_parser("process-reference", help="Extract requirements from a reference document")
    process_cmd.add_argument("document_id")

    analyze_cmd = commands.add_parser("analyze", help="Analyze a plan against reference documents")
    analyze_cmd.add_argument("plan_id")
    analyze_cmd.add_argument("reference_ids", nargs="+")

    thinking_cmd = commands.add_parser("thinking", help="Show the reasoning behind the latest report")
    thinking_cmd.add_argument("plan_id")
    return parser


def cli(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(get_settings().log_level)

    try:
        if args.command == "serve":
            serve(args.host, args.port, args.reload)
        elif args.command == "process-reference":
            process_reference(args.document_id)
        elif args.command == "analyze":
            analyze(args.plan_id, args.reference_ids)
        elif args.command == "thinking":
            thinking(args.plan_id)
    except GapAnalysisError as exc:
        logger.error(f"{exc.error_code.value}: {exc.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(cli())
