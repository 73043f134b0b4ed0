"""Orchestration — analysis graph, strategies and the orchestrator facade."""

from gap_analysis.orchestration.graph import AnalysisPipeline
from gap_analysis.orchestration.orchestrator import AnalysisOrchestrator
from gap_analysis.orchestration.strategies import (
    AnalysisStrategy,
    MultiAgentStrategy,
    SinglePassStrategy,
    build_strategy,
)

__all__ = [
    "AnalysisPipeline",
    "AnalysisOrchestrator",
    "AnalysisStrategy",
    "MultiAgentStrategy",
    "SinglePassStrategy",
    "build_strategy",
]
