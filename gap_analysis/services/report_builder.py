"""
Report Builder — turns per-section batch results into an AnalysisReport.

Scoring:
  compliance = round(100 * present / total)                 (0 when total == 0)
  quality    = round(100 * sum(points) / (3 * rated))       poor=1 adequate=2 excellent=3
Rounding is half-up, so 12.5 → 13 and 66.67 → 67.

Bands (score → label):
  >= 71  Strong Compliance                / Excellent Quality
  41-70  Moderate Compliance              / Adequate Quality
  <= 40  Significant Improvements Needed  / Needs Improvement
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from gap_analysis.models.enums import QualityRating
from gap_analysis.models.schemas import (
    DEFAULT_QUALITY_ISSUE,
    DEFAULT_QUALITY_SUGGESTION,
    AnalysisFinding,
    AnalysisReport,
    ImprovementSuggestion,
    MissingRequirement,
    QualityFinding,
    ReportSummary,
    Requirement,
    SectionBatchResult,
    SectionScore,
)

STRONG_THRESHOLD = 71
MODERATE_THRESHOLD = 41

_PLACEHOLDERS = {DEFAULT_QUALITY_ISSUE, DEFAULT_QUALITY_SUGGESTION}


# ── Scores and bands ─────────────────────────────────────

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compliance_score(present: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * present / total)


def quality_score(ratings: Iterable[QualityRating]) -> int:
    ratings = list(ratings)
    if not ratings:
        return 0
    points = sum(r.points for r in ratings)
    return round_half_up(100 * points / (3 * len(ratings)))


def classify_compliance(score: int) -> str:
    if score >= STRONG_THRESHOLD:
        return "Strong Compliance"
    if score >= MODERATE_THRESHOLD:
        return "Moderate Compliance"
    return "Significant Improvements Needed"


def classify_quality(score: int) -> str:
    if score >= STRONG_THRESHOLD:
        return "Excellent Quality"
    if score >= MODERATE_THRESHOLD:
        return "Adequate Quality"
    return "Needs Improvement"


def _meaningful(values: list[str]) -> list[str]:
    return [v for v in values if v.strip() and v not in _PLACEHOLDERS]


# ── Report assembly ──────────────────────────────────────

def build_report(
    plan_id: str,
    results: list[SectionBatchResult],
    plan_title: str = "",
    plan_type: str = "",
    reference_document_ids: Optional[list[str]] = None,
    strategy: str = "",
    analysis_id: Optional[str] = None,
) -> AnalysisReport:
    """Aggregate batch results (several batches may share a section)."""
    requirements = _requirement_index(results)

    section_findings: dict[str, list] = {}
    section_quality: dict[str, list[QualityFinding]] = {}
    for result in results:
        section_findings.setdefault(result.section, []).extend(result.compliance)
        section_quality.setdefault(result.section, []).extend(result.quality)

    section_scores: dict[str, SectionScore] = {}
    for section, findings in section_findings.items():
        present = sum(1 for f in findings if f.is_present)
        section_scores[section] = SectionScore(
            compliance=compliance_score(present, len(findings)),
            quality=quality_score(q.quality_rating for q in section_quality[section]),
            requirements_total=len(findings),
            requirements_present=present,
        )

    all_findings = [f for r in results for f in r.compliance]
    all_quality = [q for r in results for q in r.quality]
    total = len(all_findings)
    present_total = sum(1 for f in all_findings if f.is_present)

    missing = []
    for finding in all_findings:
        if finding.is_present:
            continue
        req = requirements.get(finding.requirement_id)
        missing.append(
            MissingRequirement(
                requirement_id=finding.requirement_id,
                section=req.section if req else "Unknown",
                text=req.text if req else "Unknown requirement",
                importance=req.importance if req else None,
            )
        )

    suggestions = []
    for quality in all_quality:
        issues = _meaningful(quality.issues)
        if not issues:
            continue
        req = requirements.get(quality.requirement_id)
        suggestions.append(
            ImprovementSuggestion(
                requirement_id=quality.requirement_id,
                requirement_text=req.text if req else "Unknown requirement",
                section=req.section if req else "Unknown",
                quality_rating=quality.quality_rating,
                issues=issues,
                suggestions=_meaningful(quality.suggestions),
            )
        )

    report = AnalysisReport(
        plan_id=plan_id,
        plan_title=plan_title,
        plan_type=plan_type,
        reference_document_ids=list(reference_document_ids or []),
        strategy=strategy,
        overall_compliance_score=compliance_score(present_total, total),
        overall_quality_score=quality_score(q.quality_rating for q in all_quality),
        section_scores=section_scores,
        summary=ReportSummary(
            total_requirements=total,
            requirements_present=present_total,
            requirements_missing=total - present_total,
            sections_analyzed=len(section_scores),
        ),
        missing_requirements=missing,
        improvement_suggestions=suggestions,
    )
    if analysis_id:
        report.analysis_id = analysis_id
    return report


def build_findings(report: AnalysisReport, results: list[SectionBatchResult]) -> list[AnalysisFinding]:
    """One persisted row per checked requirement, compliance merged with quality."""
    requirements = _requirement_index(results)
    quality = {q.requirement_id: q for r in results for q in r.quality}

    rows: list[AnalysisFinding] = []
    for result in results:
        for finding in result.compliance:
            req = requirements.get(finding.requirement_id)
            text = req.text if req else "Unknown requirement"
            row = AnalysisFinding(
                analysis_id=report.analysis_id,
                requirement_id=finding.requirement_id,
                section=result.section,
                is_present=finding.is_present,
                location=finding.location,
                evidence=finding.evidence,
            )
            if not finding.is_present:
                row.recommendations = f"Add this requirement to the plan: {text}"
            elif finding.requirement_id in quality:
                rated = quality[finding.requirement_id]
                row.quality_rating = rated.quality_rating
                row.issues = _meaningful(rated.issues)
                row.recommendations = "; ".join(_meaningful(rated.suggestions))
            rows.append(row)
    return rows


def _requirement_index(results: list[SectionBatchResult]) -> dict[str, Requirement]:
    return {req.id: req for r in results for req in r.batch.requirements}
