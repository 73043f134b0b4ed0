"""
Tests: scores, bands, report assembly and the thinking-process narrative.

Run with:
    pytest gap_analysis/tests/test_scoring.py -v
"""

from gap_analysis.models.enums import Importance, QualityRating
from gap_analysis.models.schemas import (
    DEFAULT_QUALITY_ISSUE,
    ComplianceFinding,
    QualityFinding,
    Requirement,
    SectionBatch,
    SectionBatchResult,
)
from gap_analysis.services.report_builder import (
    build_findings,
    build_report,
    classify_compliance,
    classify_quality,
    compliance_score,
    quality_score,
    round_half_up,
)
from gap_analysis.services.thinking_process import COMPLIANCE_FORMULA, build_thinking_process


def _results() -> list[SectionBatchResult]:
    evac = [
        Requirement(id="E1", text="Primary routes", section="Evacuation", importance=Importance.CRITICAL),
        Requirement(id="E2", text="Secondary routes", section="Evacuation"),
    ]
    comm = [
        Requirement(id="C1", text="Warning system", section="Communication"),
        Requirement(id="C2", text="Backup channels", section="Communication", importance=Importance.CRITICAL),
    ]
    return [
        SectionBatchResult(
            batch=SectionBatch(section="Evacuation", requirements=evac),
            compliance=[
                ComplianceFinding(requirement_id="E1", is_present=True, location="2.1", evidence="Route 9"),
                ComplianceFinding.not_present("E2"),
            ],
            quality=[
                QualityFinding(requirement_id="E1", quality_rating=QualityRating.POOR,
                               issues=["Vague"], suggestions=["Name the routes"]),
            ],
            quality_resolved=True,
        ),
        SectionBatchResult(
            batch=SectionBatch(section="Communication", requirements=comm[:1]),
            compliance=[ComplianceFinding(requirement_id="C1", is_present=True)],
            quality=[QualityFinding.placeholder("C1")],
            quality_resolved=True,
        ),
        # Second batch of the same section
        SectionBatchResult(
            batch=SectionBatch(section="Communication", requirements=comm[1:]),
            compliance=[ComplianceFinding.not_present("C2")],
            quality_resolved=True,
        ),
    ]


class TestScores:
    def test_compliance_rounds_half_up(self):
        assert compliance_score(28, 42) == 67
        assert compliance_score(1, 8) == 13
        assert compliance_score(3, 5) == 60

    def test_empty_inputs_score_zero(self):
        assert compliance_score(0, 0) == 0
        assert quality_score([]) == 0

    def test_quality_points(self):
        ratings = [QualityRating.EXCELLENT, QualityRating.ADEQUATE, QualityRating.POOR]
        assert quality_score(ratings) == 67
        assert quality_score([QualityRating.EXCELLENT]) == 100
        assert quality_score([QualityRating.POOR, QualityRating.POOR]) == 33

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(70.5) == 71
        assert round_half_up(70.49) == 70

    def test_band_boundaries(self):
        assert classify_compliance(71) == "Strong Compliance"
        assert classify_compliance(70) == "Moderate Compliance"
        assert classify_compliance(41) == "Moderate Compliance"
        assert classify_compliance(40) == "Significant Improvements Needed"
        assert classify_quality(71) == "Excellent Quality"
        assert classify_quality(41) == "Adequate Quality"
        assert classify_quality(40) == "Needs Improvement"


class TestBuildReport:
    def test_sections_merge_across_batches(self):
        report = build_report("PLAN-1", _results(), plan_title="County EOP", reference_document_ids=["REF-A"])

        assert report.overall_compliance_score == 50
        assert report.summary.total_requirements == 4
        assert report.summary.requirements_present == 2
        assert report.summary.requirements_missing == 2
        assert report.summary.sections_analyzed == 2

        comm = report.section_scores["Communication"]
        assert comm.requirements_total == 2
        assert comm.requirements_present == 1
        assert comm.compliance == 50
        assert sum(s.requirements_present for s in report.section_scores.values()) == 2

    def test_quality_covers_present_requirements_only(self):
        report = build_report("PLAN-1", _results())
        # poor (1) + adequate placeholder (2) out of 6
        assert report.overall_quality_score == 50
        assert report.section_scores["Evacuation"].quality == 33

    def test_missing_requirements_carry_importance(self):
        report = build_report("PLAN-1", _results())
        missing = {m.requirement_id: m for m in report.missing_requirements}
        assert set(missing) == {"E2", "C2"}
        assert missing["C2"].importance == Importance.CRITICAL
        assert missing["E2"].text == "Secondary routes"

    def test_placeholder_ratings_make_no_suggestions(self):
        report = build_report("PLAN-1", _results())
        assert [s.requirement_id for s in report.improvement_suggestions] == ["E1"]
        assert report.improvement_suggestions[0].issues == ["Vague"]

    def test_findings_rows(self):
        results = _results()
        report = build_report("PLAN-1", results)
        rows = {r.requirement_id: r for r in build_findings(report, results)}

        assert len(rows) == 4
        assert all(r.analysis_id == report.analysis_id for r in rows.values())
        assert rows["E2"].recommendations == "Add this requirement to the plan: Secondary routes"
        assert rows["E1"].quality_rating == QualityRating.POOR
        assert rows["E1"].recommendations == "Name the routes"
        assert rows["C1"].issues == []
        assert DEFAULT_QUALITY_ISSUE not in rows["C1"].issues


class TestThinkingProcess:
    def test_steps_follow_the_report(self):
        report = build_report("PLAN-1", _results(), plan_title="County EOP", reference_document_ids=["REF-A"])
        process = build_thinking_process(report)

        assert [s.type for s in process.steps] == ["start", "reference", "missing", "calculation", "quality"]
        assert process.raw_data.analysis_id == report.analysis_id

        reference = process.steps[1]
        assert reference.details["elementCount"] == 4
        assert reference.details["referencesUsed"] == ["REF-A"]

        missing = process.steps[2].details["missingElements"]
        assert {m["element"]: m["isCritical"] for m in missing} == {
            "Secondary routes": False,
            "Backup channels": True,
        }

        calculation = process.steps[3].details
        assert calculation["formula"] == COMPLIANCE_FORMULA
        assert calculation["calculation"] == "(2 / 4) × 100 = 50%"
        assert calculation["classification"] == "Moderate Compliance"

    def test_same_report_same_steps(self):
        report = build_report("PLAN-1", _results())
        first = build_thinking_process(report)
        second = build_thinking_process(report)
        assert first.model_dump() == second.model_dump()
