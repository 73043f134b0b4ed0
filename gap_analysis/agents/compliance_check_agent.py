"""
Compliance Check Agent
Responsibility: for one batch of requirements and the full plan text, decide
                per requirement whether the plan addresses it, where, and
                with what evidence.

Always returns exactly one finding per input requirement, in input order.
Entries the model leaves out, duplicates and IDs that were never asked for
are reconciled against the input: the first answer for an ID wins, unknown
IDs are dropped, and unanswered requirements get a not-present finding.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from gap_analysis.agents.base_agent import BaseAgent, load_prompt
from gap_analysis.errors import ModelGatewayError
from gap_analysis.models.enums import AgentName, ErrorCode
from gap_analysis.models.schemas import ComplianceFinding, ComplianceOutcome, Requirement
from gap_analysis.utils.json_parsing import Malformed

logger = logging.getLogger(__name__)

_PROMPT_FILE = "compliance_prompt.txt"


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ComplianceItem(BaseModel):
    requirement_id: str
    is_present: bool = Field(default=False, validation_alias=AliasChoices("isPresent", "is_present"))
    location: Optional[str] = None
    evidence: Optional[str] = None

    @field_validator("requirement_id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValueError("missing requirement_id")
        return text

    @field_validator("location", "evidence", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)


def format_requirement_list(requirements: list[Requirement]) -> str:
    return "\n".join(
        f"Requirement {i}: {req.text} [ID: {req.id}]"
        for i, req in enumerate(requirements, start=1)
    )


def complete_findings(
    requirements: list[Requirement],
    items: Iterable[ComplianceItem],
) -> tuple[list[ComplianceFinding], int]:
    """
    Reconcile model answers with the requested requirements.
    Returns (one finding per requirement, number of requirements answered).
    """
    wanted = {req.id for req in requirements}
    answers: dict[str, ComplianceItem] = {}
    for item in items:
        if item.requirement_id in wanted and item.requirement_id not in answers:
            answers[item.requirement_id] = item

    findings: list[ComplianceFinding] = []
    for req in requirements:
        item = answers.get(req.id)
        if item is None:
            findings.append(ComplianceFinding.not_present(req.id))
        else:
            findings.append(
                ComplianceFinding(
                    requirement_id=req.id,
                    is_present=item.is_present,
                    location=item.location,
                    evidence=item.evidence,
                )
            )
    return findings, len(answers)


class ComplianceCheckAgent(BaseAgent):
    name = AgentName.COMPLIANCE_CHECK
    tag = "COMPLIANCE"

    async def check(self, plan_text: str, requirements: list[Requirement]) -> list[ComplianceFinding]:
        """One finding per requirement; never raises on bad model output."""
        return (await self.check_batch(plan_text, requirements)).findings

    async def check_batch(
        self,
        plan_text: str,
        requirements: list[Requirement],
        section: str = "",
    ) -> ComplianceOutcome:
        """Like check(), but also reports whether the batch had to be defaulted."""
        if not requirements:
            return ComplianceOutcome()

        section = section or requirements[0].section
        prompt = load_prompt(_PROMPT_FILE).format(
            plan_text=plan_text,
            section=section,
            requirements_list=format_requirement_list(requirements),
        )
        logger.info(f"[COMPLIANCE] Checking {len(requirements)} requirements for '{section}'")

        try:
            raw = await self._generate(prompt, self.settings.analysis_temperature)
        except ModelGatewayError as exc:
            logger.warning(
                f"[COMPLIANCE] '{section}' defaulted to not-present: {exc.error_code.value}: {exc.message}"
            )
            return ComplianceOutcome(
                findings=[ComplianceFinding.not_present(r.id) for r in requirements],
                error_code=exc.error_code,
                error_message=exc.message,
            )

        parsed = self._parse_items(raw, ComplianceItem)
        items = [] if isinstance(parsed, Malformed) else parsed.value
        findings, answered = complete_findings(requirements, items)

        if answered == 0:
            logger.warning(f"[COMPLIANCE] '{section}': no usable answers, all {len(requirements)} defaulted")
            return ComplianceOutcome(
                findings=findings,
                error_code=ErrorCode.MALFORMED_MODEL_OUTPUT,
                error_message=f"No usable compliance answers for section '{section}'",
            )

        if answered < len(requirements):
            logger.warning(
                f"[COMPLIANCE] '{section}': {len(requirements) - answered} of "
                f"{len(requirements)} requirements unanswered, defaulted to not-present"
            )
        present = sum(1 for f in findings if f.is_present)
        logger.info(f"[COMPLIANCE] '{section}': {present}/{len(findings)} present")
        return ComplianceOutcome(findings=findings)
