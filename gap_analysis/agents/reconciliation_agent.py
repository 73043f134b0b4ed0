"""
Reconciliation Agent
Responsibility: group requirements from different reference standards that
                express the same obligation.

Best effort.  There is no completeness guarantee: any failure, or output
that is not a list of ID groups, yields no groups for that section.
"""

from __future__ import annotations

import logging
from typing import Any

from gap_analysis.agents.base_agent import BaseAgent, load_prompt
from gap_analysis.agents.compliance_check_agent import format_requirement_list
from gap_analysis.errors import ModelGatewayError
from gap_analysis.models.enums import AgentName
from gap_analysis.models.schemas import Requirement
from gap_analysis.utils.json_parsing import Malformed

logger = logging.getLogger(__name__)

_PROMPT_FILE = "reconciliation_prompt.txt"


def sanitize_groups(raw_groups: list[Any], known_ids: set[str]) -> list[list[str]]:
    """
    Keep only groups of two or more known IDs.
    An ID joins at most one group (the first that names it).
    """
    claimed: set[str] = set()
    groups: list[list[str]] = []
    for raw in raw_groups:
        if not isinstance(raw, list):
            continue
        group: list[str] = []
        for value in raw:
            req_id = str(value).strip()
            if req_id in known_ids and req_id not in claimed and req_id not in group:
                group.append(req_id)
        if len(group) >= 2:
            claimed.update(group)
            groups.append(group)
    return groups


class ReconciliationAgent(BaseAgent):
    name = AgentName.RECONCILIATION
    tag = "RECONCILE"

    async def group_equivalents(self, section: str, requirements: list[Requirement]) -> list[list[str]]:
        if len(requirements) < 2:
            return []

        prompt = load_prompt(_PROMPT_FILE).format(
            section=section,
            requirements_list=format_requirement_list(requirements),
        )
        try:
            raw = await self._generate(prompt, self.settings.analysis_temperature)
        except ModelGatewayError as exc:
            logger.warning(f"[RECONCILE] '{section}' skipped: {exc.error_code.value}: {exc.message}")
            return []

        parsed = self._parse_items(raw)
        if isinstance(parsed, Malformed):
            return []

        raw_groups = parsed.value
        if raw_groups and all(isinstance(v, str) for v in raw_groups):
            raw_groups = [raw_groups]  # a single bare group
        groups = sanitize_groups(raw_groups, {r.id for r in requirements})
        logger.info(f"[RECONCILE] '{section}': {len(groups)} equivalence group(s) among {len(requirements)}")
        return groups
