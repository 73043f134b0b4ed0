"""
Single-Pass Analysis Agent
Responsibility: presence and quality of a requirement batch in ONE call.

The cheaper alternative to running the compliance and quality agents back to
back.  Output goes through the same completeness rules: one compliance
finding per requirement, one rating per present requirement.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import field_validator

from gap_analysis.agents.base_agent import BaseAgent, load_prompt
from gap_analysis.agents.compliance_check_agent import (
    ComplianceItem,
    complete_findings,
    format_requirement_list,
)
from gap_analysis.errors import ModelGatewayError
from gap_analysis.models.enums import AgentName, ErrorCode, QualityRating
from gap_analysis.models.schemas import (
    ComplianceFinding,
    ComplianceOutcome,
    QualityFinding,
    QualityOutcome,
    Requirement,
)
from gap_analysis.utils.json_parsing import Malformed

logger = logging.getLogger(__name__)

_PROMPT_FILE = "single_pass_prompt.txt"


class SinglePassItem(ComplianceItem):
    quality_rating: Optional[QualityRating] = None
    issues: list[str] = []
    suggestions: list[str] = []

    @field_validator("quality_rating", mode="before")
    @classmethod
    def _rating(cls, value: Any) -> Optional[QualityRating]:
        try:
            return QualityRating(str(value or "").strip().lower())
        except ValueError:
            return None

    @field_validator("issues", "suggestions", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [str(v).strip() for v in value if str(v).strip()]


class SinglePassAnalysisAgent(BaseAgent):
    name = AgentName.SINGLE_PASS_ANALYSIS
    tag = "SINGLE-PASS"

    async def analyze_batch(
        self,
        plan_text: str,
        requirements: list[Requirement],
        section: str = "",
    ) -> tuple[ComplianceOutcome, QualityOutcome]:
        if not requirements:
            return ComplianceOutcome(), QualityOutcome()

        section = section or requirements[0].section
        prompt = load_prompt(_PROMPT_FILE).format(
            plan_text=plan_text,
            section=section,
            requirements_list=format_requirement_list(requirements),
        )
        logger.info(f"[SINGLE-PASS] Analyzing {len(requirements)} requirements for '{section}'")

        try:
            raw = await self._generate(prompt, self.settings.analysis_temperature)
        except ModelGatewayError as exc:
            logger.warning(f"[SINGLE-PASS] '{section}' defaulted: {exc.error_code.value}: {exc.message}")
            return (
                ComplianceOutcome(
                    findings=[ComplianceFinding.not_present(r.id) for r in requirements],
                    error_code=exc.error_code,
                    error_message=exc.message,
                ),
                QualityOutcome(),
            )

        parsed = self._parse_items(raw, SinglePassItem)
        items: list[SinglePassItem] = [] if isinstance(parsed, Malformed) else parsed.value
        findings, answered = complete_findings(requirements, items)

        by_id: dict[str, SinglePassItem] = {}
        for item in items:
            by_id.setdefault(item.requirement_id, item)

        quality: list[QualityFinding] = []
        for finding in findings:
            if not finding.is_present:
                continue
            item = by_id.get(finding.requirement_id)
            if item is None or item.quality_rating is None:
                quality.append(QualityFinding.placeholder(finding.requirement_id))
            else:
                quality.append(
                    QualityFinding(
                        requirement_id=finding.requirement_id,
                        quality_rating=item.quality_rating,
                        issues=item.issues,
                        suggestions=item.suggestions,
                    )
                )

        if answered == 0:
            logger.warning(f"[SINGLE-PASS] '{section}': no usable answers, all defaulted")
            return (
                ComplianceOutcome(
                    findings=findings,
                    error_code=ErrorCode.MALFORMED_MODEL_OUTPUT,
                    error_message=f"No usable answers for section '{section}'",
                ),
                QualityOutcome(findings=quality),
            )
        return ComplianceOutcome(findings=findings), QualityOutcome(findings=quality)
