"""
Tests: the analysis graph and orchestrator operations end to end, with
in-memory stores and a scripted gateway.

Run with:
    pytest gap_analysis/tests/test_pipeline.py -v
"""

import asyncio
import json

import pytest

from gap_analysis.errors import (
    AnalysisValidationError,
    DocumentNotFoundError,
    MalformedModelOutputError,
    ModelUnavailableError,
    NoRequirementsError,
    PlanContentUnavailableError,
)
from gap_analysis.models.enums import AnalysisStatus, DocumentType, ErrorCode
from gap_analysis.models.schemas import DocumentChunk, DocumentRecord, Requirement
from gap_analysis.tests.fakes import (
    PLAN_TEXT,
    FakeGateway,
    compliance_answer,
    make_settings,
    quality_answer,
    requirement_ids,
    seeded_stores,
)

PRESENT = {
    "REQ-EVAC-1": "Residents leave via Route 9 and Route 12.",
    "REQ-EVAC-3": "Shelters open at the high school.",
    "REQ-COMM-1": "Sirens sound county-wide.",
}
RATINGS = {"REQ-EVAC-1": "excellent", "REQ-EVAC-3": "adequate", "REQ-COMM-1": "poor"}


def _orchestrator(stores, gateway, **overrides):
    from gap_analysis.orchestration import AnalysisOrchestrator

    return AnalysisOrchestrator(
        stores.documents,
        stores.requirements,
        stores.reports,
        gateway=gateway,
        settings=make_settings(**overrides),
    )


def _gateway(**extra):
    handlers = {"compliance": compliance_answer(PRESENT), "quality": quality_answer(RATINGS)}
    handlers.update(extra)
    return FakeGateway(**handlers)


class TestAnalyzePlan:
    def test_scores_and_storage(self):
        stores = seeded_stores()
        gateway = _gateway()

        report = asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        assert report.overall_compliance_score == 60
        assert report.overall_quality_score == 67
        assert report.plan_title == "County EOP"
        assert report.plan_type == "EOP"
        assert report.reference_document_ids == ["REF-A"]
        assert report.strategy == "multi_agent"
        assert report.summary.total_requirements == 5
        assert report.summary.requirements_missing == 2
        assert sum(s.requirements_present for s in report.section_scores.values()) == 3
        assert report.section_scores["Evacuation"].compliance == 67
        assert report.section_scores["Communication"].compliance == 50
        assert {m.requirement_id for m in report.missing_requirements} == {"REQ-EVAC-2", "REQ-COMM-2"}

        latest = asyncio.run(stores.reports.get_latest_report("PLAN-1"))
        assert latest.analysis_id == report.analysis_id
        findings = stores.reports.findings_for(report.analysis_id)
        assert len(findings) == 5
        assert sum(1 for f in findings if f.is_present) == 3

    def test_plan_text_reaches_compliance_prompts(self):
        stores = seeded_stores()
        gateway = _gateway()

        asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        prompts = gateway.prompts("compliance")
        assert len(prompts) == 2
        assert all(PLAN_TEXT in p for p in prompts)

    def test_quality_only_sees_present_requirements(self):
        stores = seeded_stores()
        gateway = _gateway()

        asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        rated = {req_id for p in gateway.prompts("quality") for req_id in requirement_ids(p)}
        assert rated == set(PRESENT)

    def test_nothing_present_skips_quality(self):
        stores = seeded_stores()
        gateway = FakeGateway(compliance=compliance_answer({}))

        report = asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        assert report.overall_compliance_score == 0
        assert report.overall_quality_score == 0
        assert gateway.prompts("quality") == []
        assert len(report.missing_requirements) == 5

    def test_large_sections_are_split_into_batches(self):
        stores = seeded_stores()
        gateway = _gateway()

        report = asyncio.run(
            _orchestrator(stores, gateway, max_requirements_per_batch=2).analyze_plan("PLAN-1", ["REF-A"])
        )

        assert len(gateway.prompts("compliance")) == 3
        assert report.section_scores["Evacuation"].requirements_total == 3
        assert report.overall_compliance_score == 60

    def test_one_failed_batch_degrades_to_missing(self):
        def compliance(prompt):
            if '"Communication" section' in prompt:
                return ModelUnavailableError("connection reset")
            return compliance_answer(PRESENT)(prompt)

        stores = seeded_stores()
        gateway = _gateway(compliance=compliance)

        report = asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        assert report.overall_compliance_score == 40
        assert report.section_scores["Communication"].requirements_present == 0
        assert {"REQ-COMM-1", "REQ-COMM-2"} <= {m.requirement_id for m in report.missing_requirements}

    def test_every_batch_failing_fails_the_run(self):
        stores = seeded_stores()
        gateway = FakeGateway(compliance=ModelUnavailableError("quota", quota_exhausted=True))

        with pytest.raises(ModelUnavailableError) as info:
            asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        assert info.value.error_code == ErrorCode.QUOTA_EXHAUSTED
        assert info.value.status_code == 429
        assert stores.reports.reports_for("PLAN-1") == []

    def test_latest_report_wins(self):
        stores = seeded_stores()
        orchestrator = _orchestrator(stores, _gateway())

        first = asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-A"]))
        second = asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-A", "REF-A"]))

        assert first.analysis_id != second.analysis_id
        assert second.reference_document_ids == ["REF-A"]
        assert asyncio.run(orchestrator.get_latest_report("PLAN-1")).analysis_id == second.analysis_id

    def test_single_pass_strategy(self):
        def single_pass(prompt):
            items = []
            for req_id in requirement_ids(prompt):
                item = {"requirement_id": req_id, "isPresent": req_id in PRESENT}
                if req_id in PRESENT:
                    item["quality_rating"] = RATINGS[req_id]
                items.append(item)
            return json.dumps(items)

        stores = seeded_stores()
        gateway = FakeGateway(single_pass=single_pass)

        report = asyncio.run(
            _orchestrator(stores, gateway, analysis_strategy="single_pass").analyze_plan("PLAN-1", ["REF-A"])
        )

        assert report.strategy == "single_pass"
        assert report.overall_compliance_score == 60
        assert report.overall_quality_score == 67
        assert {k for k, _ in gateway.calls} == {"single_pass"}


class TestAnalyzePlanFailures:
    def test_request_validation(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(AnalysisValidationError):
            asyncio.run(orchestrator.analyze_plan("PLAN-1", []))
        with pytest.raises(AnalysisValidationError):
            asyncio.run(orchestrator.analyze_plan("  ", ["REF-A"]))

    def test_unknown_plan(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(orchestrator.analyze_plan("PLAN-404", ["REF-A"]))

    def test_reference_is_not_a_plan(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(AnalysisValidationError) as info:
            asyncio.run(orchestrator.analyze_plan("REF-A", ["REF-A"]))
        assert info.value.error_code == ErrorCode.VALIDATION_ERROR

    def test_no_requirements(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(NoRequirementsError):
            asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-UNPROCESSED"]))

    def test_plan_without_content(self):
        orchestrator = _orchestrator(seeded_stores(plan_text=None), FakeGateway())
        with pytest.raises(PlanContentUnavailableError):
            asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-A"]))

    def test_plan_raw_file_fallback(self):
        stores = seeded_stores(plan_text=None)
        stores.documents.add_document(
            DocumentRecord(id="PLAN-1", type=DocumentType.PLAN, title="County EOP", file_url="county-eop.txt")
        )
        stores.documents.add_raw_file("plans", "county-eop.txt", PLAN_TEXT.encode("utf-8"))
        gateway = _gateway()

        report = asyncio.run(_orchestrator(stores, gateway).analyze_plan("PLAN-1", ["REF-A"]))

        assert report.overall_compliance_score == 60
        assert all("Route 9" in p for p in gateway.prompts("compliance"))

    def test_failed_run_state(self):
        from gap_analysis.orchestration import AnalysisPipeline, build_strategy

        stores = seeded_stores()
        settings = make_settings()
        gateway = FakeGateway()
        pipeline = AnalysisPipeline(
            stores.documents, stores.requirements, stores.reports,
            build_strategy(gateway=gateway, settings=settings), settings,
        )

        state = asyncio.run(pipeline.run("PLAN-1", ["REF-UNPROCESSED"]))

        assert state["status"] == AnalysisStatus.FAILED
        assert state["error_code"] == ErrorCode.NO_REQUIREMENTS
        assert state["current_stage"] == "fetch_requirements"
        assert [e["action"] for e in state["audit_trail"]] == ["completed", "failed"]
        assert gateway.calls == []


class TestThinkingProcess:
    def test_requires_a_stored_report(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(orchestrator.get_thinking_process("PLAN-1"))

    def test_narrates_latest_report(self):
        orchestrator = _orchestrator(seeded_stores(), _gateway())
        report = asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-A"]))

        process = asyncio.run(orchestrator.get_thinking_process("PLAN-1"))

        assert process.raw_data.analysis_id == report.analysis_id
        assert process.steps[3].details["calculation"] == "(3 / 5) × 100 = 60%"
        critical = {m["element"] for m in process.steps[2].details["missingElements"] if m["isCritical"]}
        assert critical == set()


class TestReferenceProcessing:
    def _reference(self, stores, doc_id="REF-B", chunks=None, file_url=""):
        stores.documents.add_document(
            DocumentRecord(id=doc_id, type=DocumentType.REFERENCE, title="Standard B", file_url=file_url),
            chunks,
        )

    def test_extracts_from_stored_chunks(self):
        stores = seeded_stores()
        self._reference(stores, chunks=[
            DocumentChunk(content="3. Evacuation\n\nRoutes shall be mapped.", metadata={"title": "3. Evacuation"}),
            DocumentChunk(content="4. Warning\n\nSirens shall be tested.", metadata={"title": "4. Warning"}, index=1),
        ])

        def extraction(prompt):
            if "Routes shall be mapped" in prompt:
                return '[{"text": "Map evacuation routes", "section": "Evacuation", "importance": "critical"}]'
            return '[{"text": "Test sirens monthly", "section": "Communication"}]'

        gateway = FakeGateway(extraction=extraction)
        summary = asyncio.run(_orchestrator(stores, gateway).process_reference_document("REF-B"))

        assert summary.document_id == "REF-B"
        assert summary.requirements_count == 2
        assert summary.requirements_by_section == {"Evacuation": 1, "Communication": 1}
        stored = asyncio.run(stores.requirements.get_requirements_for_documents(["REF-B"]))
        assert {r.text for r in stored} == {"Map evacuation routes", "Test sirens monthly"}
        assert {r.source_section for r in stored} == {"3. Evacuation", "4. Warning"}
        assert all(r.source_document_ids == ["REF-B"] for r in stored)

    def test_reprocessing_replaces_requirements(self):
        stores = seeded_stores()
        self._reference(stores, chunks=[DocumentChunk(content="Routes shall be mapped.")])
        answers = [
            '[{"text": "Old requirement one"}, {"text": "Old requirement two"}]',
            '[{"text": "New requirement"}]',
        ]
        gateway = FakeGateway(extraction=lambda prompt: answers.pop(0))
        orchestrator = _orchestrator(stores, gateway)

        asyncio.run(orchestrator.process_reference_document("REF-B"))
        summary = asyncio.run(orchestrator.process_reference_document("REF-B"))

        assert summary.requirements_count == 1
        stored = asyncio.run(stores.requirements.get_requirements_for_documents(["REF-B"]))
        assert [r.text for r in stored] == ["New requirement"]

    def test_model_outage_keeps_previous_requirements(self):
        stores = seeded_stores()
        self._reference(stores, chunks=[
            DocumentChunk(content="Routes shall be mapped."),
            DocumentChunk(content="Sirens shall be tested.", index=1),
        ])
        gateway = FakeGateway(extraction='[{"text": "Map routes"}, {"text": "Test sirens"}]')
        asyncio.run(_orchestrator(stores, gateway).process_reference_document("REF-B"))

        down = FakeGateway(extraction=ModelUnavailableError("Quota exceeded", quota_exhausted=True))
        with pytest.raises(ModelUnavailableError) as exc_info:
            asyncio.run(_orchestrator(stores, down).process_reference_document("REF-B"))

        assert exc_info.value.error_code == ErrorCode.QUOTA_EXHAUSTED
        stored = asyncio.run(stores.requirements.get_requirements_for_documents(["REF-B"]))
        assert sorted(r.text for r in stored) == ["Map routes", "Test sirens"]

    def test_unparseable_extraction_keeps_previous_requirements(self):
        stores = seeded_stores()
        self._reference(stores, doc_id="REF-A", chunks=[DocumentChunk(content="Routes shall be mapped.")])
        gateway = FakeGateway(extraction="No requirements, sorry.")

        with pytest.raises(MalformedModelOutputError):
            asyncio.run(_orchestrator(stores, gateway).process_reference_document("REF-A"))

        stored = asyncio.run(stores.requirements.get_requirements_for_documents(["REF-A"]))
        assert len(stored) == 5

    def test_raw_file_fallback(self):
        stores = seeded_stores()
        self._reference(stores, file_url="standard-b.md")
        stores.documents.add_raw_file("reference-documents", "standard-b.md", b"Shelters shall be accessible.")
        gateway = FakeGateway(extraction='[{"text": "Ensure accessible shelters", "section": "Sheltering"}]')

        summary = asyncio.run(_orchestrator(stores, gateway).process_reference_document("REF-B"))

        assert summary.requirements_by_section == {"Sheltering": 1}
        assert "Shelters shall be accessible." in gateway.prompts("extraction")[0]

    def test_document_checks(self):
        orchestrator = _orchestrator(seeded_stores(), FakeGateway())
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(orchestrator.process_reference_document("REF-404"))
        with pytest.raises(AnalysisValidationError):
            asyncio.run(orchestrator.process_reference_document("PLAN-1"))

    def test_reference_without_content(self):
        stores = seeded_stores()
        self._reference(stores)
        with pytest.raises(AnalysisValidationError):
            asyncio.run(_orchestrator(stores, FakeGateway()).process_reference_document("REF-B"))

    def test_delete_requirements(self):
        stores = seeded_stores()
        orchestrator = _orchestrator(stores, FakeGateway())

        result = asyncio.run(orchestrator.delete_reference_requirements("REF-A"))

        assert result == {"document_id": "REF-A", "deleted_requirements_count": 5}
        with pytest.raises(NoRequirementsError):
            asyncio.run(orchestrator.analyze_plan("PLAN-1", ["REF-A"]))


class TestReconciliation:
    def _stores(self):
        stores = seeded_stores()
        stores.documents.add_document(DocumentRecord(id="REF-B", type=DocumentType.REFERENCE))
        asyncio.run(stores.requirements.insert_requirement(
            Requirement(id="REQ-B-1", text="Map evacuation routes", section="Evacuation",
                        source_document_ids=["REF-B"])
        ))
        return stores

    def test_groups_equivalent_requirements(self):
        def reconciliation(prompt):
            if '"Evacuation" plan section' in prompt:
                return '[["REQ-EVAC-1", "REQ-B-1"]]'
            return "[]"

        stores = self._stores()
        gateway = FakeGateway(reconciliation=reconciliation)

        result = asyncio.run(_orchestrator(stores, gateway).reconcile_requirements(["REF-A", "REF-B"]))

        assert result.reference_ids == ["REF-A", "REF-B"]
        assert result.sections_processed == 2
        assert result.mappings_found == 1
        assert result.groups == [["REQ-EVAC-1", "REQ-B-1"]]
        assert stores.requirements.mappings() == [("REQ-EVAC-1", "REQ-B-1", "equivalent")]

        stored = {r.id: r for r in asyncio.run(stores.requirements.get_requirements_for_documents(["REF-B"]))}
        assert set(stored) == {"REQ-EVAC-1", "REQ-B-1"}
        assert set(stored["REQ-B-1"].source_document_ids) == {"REF-A", "REF-B"}

    def test_needs_two_references(self):
        orchestrator = _orchestrator(self._stores(), FakeGateway())
        with pytest.raises(AnalysisValidationError):
            asyncio.run(orchestrator.reconcile_requirements(["REF-A"]))
        with pytest.raises(AnalysisValidationError):
            asyncio.run(orchestrator.reconcile_requirements(["REF-A", "REF-A"]))

    def test_model_failure_is_best_effort(self):
        stores = self._stores()
        gateway = FakeGateway(reconciliation=ModelUnavailableError("down"))

        result = asyncio.run(_orchestrator(stores, gateway).reconcile_requirements(["REF-A", "REF-B"]))

        assert result.mappings_found == 0
        assert result.sections_processed == 2
        assert stores.requirements.mappings() == []
