"""
Analysis strategies — how one section batch is checked and rated.

  MultiAgentStrategy  compliance agent, then quality agent over the present subset
  SinglePassStrategy  one combined prompt per batch

The strategy is chosen when the pipeline is built (settings.analysis_strategy),
never switched at run time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from gap_analysis.agents import (
    ComplianceCheckAgent,
    QualityEvaluationAgent,
    SinglePassAnalysisAgent,
)
from gap_analysis.config import Settings, get_settings
from gap_analysis.models.enums import AnalysisStrategyName
from gap_analysis.models.schemas import SectionBatch, SectionBatchResult


class AnalysisStrategy(ABC):
    name: AnalysisStrategyName

    @abstractmethod
    async def check_compliance(self, plan_text: str, batch: SectionBatch) -> SectionBatchResult: ...

    @abstractmethod
    async def evaluate_quality(self, plan_text: str, result: SectionBatchResult) -> SectionBatchResult: ...


class MultiAgentStrategy(AnalysisStrategy):
    name = AnalysisStrategyName.MULTI_AGENT

    def __init__(self, gateway: Any = None, settings: Optional[Settings] = None):
        self.compliance_agent = ComplianceCheckAgent(gateway, settings)
        self.quality_agent = QualityEvaluationAgent(gateway, settings)

    async def check_compliance(self, plan_text: str, batch: SectionBatch) -> SectionBatchResult:
        outcome = await self.compliance_agent.check_batch(plan_text, batch.requirements, batch.section)
        return SectionBatchResult(
            batch=batch,
            compliance=outcome.findings,
            compliance_error=outcome.error_code,
            error_message=outcome.error_message,
        )

    async def evaluate_quality(self, plan_text: str, result: SectionBatchResult) -> SectionBatchResult:
        if result.quality_resolved:
            return result
        by_id = {req.id: req for req in result.batch.requirements}
        present = [(by_id[f.requirement_id], f) for f in result.present_findings()]
        outcome = await self.quality_agent.evaluate_batch(plan_text, present, result.section)
        return result.model_copy(
            update={
                "quality": outcome.findings,
                "quality_resolved": True,
                "quality_error": outcome.error_code,
                "error_message": result.error_message or outcome.error_message,
            }
        )


class SinglePassStrategy(AnalysisStrategy):
    name = AnalysisStrategyName.SINGLE_PASS

    def __init__(self, gateway: Any = None, settings: Optional[Settings] = None):
        self.agent = SinglePassAnalysisAgent(gateway, settings)

    async def check_compliance(self, plan_text: str, batch: SectionBatch) -> SectionBatchResult:
        compliance, quality = await self.agent.analyze_batch(plan_text, batch.requirements, batch.section)
        return SectionBatchResult(
            batch=batch,
            compliance=compliance.findings,
            quality=quality.findings,
            quality_resolved=True,
            compliance_error=compliance.error_code,
            error_message=compliance.error_message,
        )

    async def evaluate_quality(self, plan_text: str, result: SectionBatchResult) -> SectionBatchResult:
        return result


def build_strategy(
    name: str | AnalysisStrategyName | None = None,
    gateway: Any = None,
    settings: Optional[Settings] = None,
) -> AnalysisStrategy:
    settings = settings or get_settings()
    strategy = AnalysisStrategyName(name or settings.analysis_strategy)
    if strategy == AnalysisStrategyName.SINGLE_PASS:
        return SinglePassStrategy(gateway, settings)
    return MultiAgentStrategy(gateway, settings)
