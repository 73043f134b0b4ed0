"""
Quality Evaluation Agent
Responsibility: rate how well the plan implements requirements that the
                compliance check already found present (poor / adequate /
                excellent), with issues and suggested improvements.

Only ever called with present requirements; passing a not-present finding
is a programming error and raises ValueError.  Every input requirement gets
a rating: unanswered or unparseable entries get the "adequate" placeholder.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import BaseModel, field_validator

from gap_analysis.agents.base_agent import BaseAgent, load_prompt
from gap_analysis.errors import ModelGatewayError
from gap_analysis.models.enums import AgentName, ErrorCode, QualityRating
from gap_analysis.models.schemas import (
    ComplianceFinding,
    QualityFinding,
    QualityOutcome,
    Requirement,
)
from gap_analysis.utils.json_parsing import Malformed

logger = logging.getLogger(__name__)

_PROMPT_FILE = "quality_prompt.txt"

PresentRequirement = tuple[Requirement, ComplianceFinding]


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


class QualityItem(BaseModel):
    requirement_id: str
    quality_rating: QualityRating
    issues: list[str] = []
    suggestions: list[str] = []

    @field_validator("requirement_id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValueError("missing requirement_id")
        return text

    @field_validator("quality_rating", mode="before")
    @classmethod
    def _rating(cls, value: Any) -> str:
        # Exact enum values only; anything else makes the item malformed
        return str(value or "").strip().lower()

    @field_validator("issues", "suggestions", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list[str]:
        return _string_list(value)


def format_present_requirements(present: list[PresentRequirement]) -> str:
    blocks = []
    for i, (req, finding) in enumerate(present, start=1):
        blocks.append(
            f"Requirement {i}: {req.text} [ID: {req.id}]\n"
            f"  Evidence: {finding.evidence or 'No evidence provided'}\n"
            f"  Location: {finding.location or 'Unknown location'}"
        )
    return "\n\n".join(blocks)


def complete_quality(
    requirement_ids: list[str],
    items: Iterable[QualityItem],
) -> tuple[list[QualityFinding], int]:
    """One rating per requirement ID; first answer wins, gaps get the placeholder."""
    wanted = set(requirement_ids)
    answers: dict[str, QualityItem] = {}
    for item in items:
        if item.requirement_id in wanted and item.requirement_id not in answers:
            answers[item.requirement_id] = item

    findings: list[QualityFinding] = []
    for req_id in requirement_ids:
        item = answers.get(req_id)
        if item is None:
            findings.append(QualityFinding.placeholder(req_id))
        else:
            findings.append(
                QualityFinding(
                    requirement_id=req_id,
                    quality_rating=item.quality_rating,
                    issues=item.issues,
                    suggestions=item.suggestions,
                )
            )
    return findings, len(answers)


class QualityEvaluationAgent(BaseAgent):
    name = AgentName.QUALITY_EVALUATION
    tag = "QUALITY"

    async def evaluate(self, plan_text: str, present: list[PresentRequirement]) -> list[QualityFinding]:
        """One rating per present requirement; never raises on bad model output."""
        return (await self.evaluate_batch(plan_text, present)).findings

    async def evaluate_batch(
        self,
        plan_text: str,
        present: list[PresentRequirement],
        section: str = "",
    ) -> QualityOutcome:
        for req, finding in present:
            if not finding.is_present or finding.requirement_id != req.id:
                raise ValueError(
                    f"Quality evaluation requires a present finding for {req.id}, "
                    f"got is_present={finding.is_present} for {finding.requirement_id}"
                )
        if not present:
            return QualityOutcome()

        requirement_ids = [req.id for req, _ in present]
        section = section or present[0][0].section
        prompt = load_prompt(_PROMPT_FILE).format(
            plan_text=plan_text,
            requirements_list=format_present_requirements(present),
        )
        logger.info(f"[QUALITY] Evaluating {len(present)} present requirements for '{section}'")

        try:
            raw = await self._generate(prompt, self.settings.analysis_temperature)
        except ModelGatewayError as exc:
            logger.warning(
                f"[QUALITY] '{section}' defaulted to adequate: {exc.error_code.value}: {exc.message}"
            )
            return QualityOutcome(
                findings=[QualityFinding.placeholder(r) for r in requirement_ids],
                error_code=exc.error_code,
                error_message=exc.message,
            )

        parsed = self._parse_items(raw, QualityItem)
        items = [] if isinstance(parsed, Malformed) else parsed.value
        findings, answered = complete_quality(requirement_ids, items)

        if answered == 0:
            logger.warning(f"[QUALITY] '{section}': no usable ratings, all {len(present)} defaulted")
            return QualityOutcome(
                findings=findings,
                error_code=ErrorCode.MALFORMED_MODEL_OUTPUT,
                error_message=f"No usable quality ratings for section '{section}'",
            )
        if answered < len(present):
            logger.warning(
                f"[QUALITY] '{section}': {len(present) - answered} of {len(present)} "
                f"requirements unrated, defaulted to adequate"
            )
        return QualityOutcome(findings=findings)
