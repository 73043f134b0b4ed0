"""
Thinking Process — the step-by-step narrative shown next to a report.

Derived from a stored AnalysisReport alone.  No model calls, so the same
report always produces the same steps.
"""

from __future__ import annotations

from gap_analysis.models.enums import Importance
from gap_analysis.models.schemas import AnalysisReport, ThinkingProcess, ThinkingStep
from gap_analysis.services.report_builder import classify_compliance, classify_quality

COMPLIANCE_FORMULA = "(Elements Present / Total Required Elements) × 100"
QUALITY_FORMULA = "(Sum of ratings [poor=1, adequate=2, excellent=3] / (3 × Rated Elements)) × 100"


def build_thinking_process(report: AnalysisReport) -> ThinkingProcess:
    total = report.summary.total_requirements
    present = report.summary.requirements_present
    missing = report.missing_requirements
    score = report.overall_compliance_score

    steps = [
        ThinkingStep(
            type="start",
            title="Analysis Started",
            description=f"Analyzing {report.plan_title or 'plan'} against reference standards",
            timestamp=report.analyzed_at,
        ),
        ThinkingStep(
            type="reference",
            title="Reference Analysis",
            description=f"Extracted {total} required elements from reference standards",
            details={
                "referencesUsed": list(report.reference_document_ids),
                "elementCount": total,
                "sections": list(report.section_scores.keys()),
            },
        ),
        ThinkingStep(
            type="missing",
            title="Missing Elements Identified",
            description=f"Found {len(missing)} required elements missing from the plan",
            details={
                "missingElements": [
                    {
                        "element": m.text,
                        "section": m.section,
                        "isCritical": m.importance == Importance.CRITICAL,
                    }
                    for m in missing
                ],
            },
        ),
        ThinkingStep(
            type="calculation",
            title="Compliance Calculation",
            description="Calculated compliance score based on present and missing elements",
            details={
                "formula": COMPLIANCE_FORMULA,
                "calculation": f"({present} / {total}) × 100 = {score}%",
                "classification": classify_compliance(score),
            },
        ),
        ThinkingStep(
            type="quality",
            title="Quality Assessment",
            description=f"Rated implementation quality of {present} present elements",
            details={
                "formula": QUALITY_FORMULA,
                "score": report.overall_quality_score,
                "classification": classify_quality(report.overall_quality_score),
            },
        ),
    ]
    return ThinkingProcess(steps=steps, raw_data=report)
