from .base_agent import BaseAgent
from .requirement_extraction_agent import RequirementExtractionAgent
from .compliance_check_agent import ComplianceCheckAgent
from .quality_evaluation_agent import QualityEvaluationAgent
from .single_pass_analysis_agent import SinglePassAnalysisAgent
from .reconciliation_agent import ReconciliationAgent

__all__ = [
    "BaseAgent",
    "RequirementExtractionAgent",
    "ComplianceCheckAgent",
    "QualityEvaluationAgent",
    "SinglePassAnalysisAgent",
    "ReconciliationAgent",
]
