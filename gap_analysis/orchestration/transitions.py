"""
Routing functions for LangGraph conditional edges.

Each function inspects the current state dict and returns the name of the
next node.  Any node that set status FAILED routes to the "failed" node.
"""

from __future__ import annotations

from typing import Any

from gap_analysis.models.enums import AnalysisStatus


def _failed(state: dict[str, Any]) -> bool:
    status = state.get("status")
    return status in (AnalysisStatus.FAILED, AnalysisStatus.FAILED.value)


def route_after_fetch_plan_content(state: dict[str, Any]) -> str:
    return "failed" if _failed(state) else "fetch_requirements"


def route_after_fetch_requirements(state: dict[str, Any]) -> str:
    return "failed" if _failed(state) else "check_compliance"


def route_after_check_compliance(state: dict[str, Any]) -> str:
    """Skip quality evaluation when nothing was found present."""
    if _failed(state):
        return "failed"
    for result in state.get("batch_results", []):
        if any(f.get("is_present") for f in result.get("compliance", [])):
            return "evaluate_quality"
    return "aggregate"


def route_after_evaluate_quality(state: dict[str, Any]) -> str:
    return "failed" if _failed(state) else "aggregate"


def route_after_aggregate(state: dict[str, Any]) -> str:
    return "failed" if _failed(state) else "store"


def route_after_store(state: dict[str, Any]) -> str:
    return "failed" if _failed(state) else "done"
