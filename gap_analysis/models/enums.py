from enum import Enum


class DocumentType(str, Enum):
    PLAN = "plan"
    REFERENCE = "reference"


class Importance(str, Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    RECOMMENDED = "recommended"


class QualityRating(str, Enum):
    POOR = "poor"
    ADEQUATE = "adequate"
    EXCELLENT = "excellent"

    @property
    def points(self) -> int:
        return {"poor": 1, "adequate": 2, "excellent": 3}[self.value]


class AnalysisStatus(str, Enum):
    IDLE = "IDLE"
    FETCHING_PLAN_CONTENT = "FETCHING_PLAN_CONTENT"
    FETCHING_REQUIREMENTS = "FETCHING_REQUIREMENTS"
    CHECKING_COMPLIANCE = "CHECKING_COMPLIANCE"
    EVALUATING_QUALITY = "EVALUATING_QUALITY"
    AGGREGATING = "AGGREGATING"
    STORED = "STORED"
    DONE = "DONE"
    FAILED = "FAILED"


class AnalysisStrategyName(str, Enum):
    MULTI_AGENT = "multi_agent"
    SINGLE_PASS = "single_pass"


class ErrorCode(str, Enum):
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    TIMEOUT = "TIMEOUT"
    MALFORMED_MODEL_OUTPUT = "MALFORMED_MODEL_OUTPUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PLAN_CONTENT_UNAVAILABLE = "PLAN_CONTENT_UNAVAILABLE"
    NO_REQUIREMENTS = "NO_REQUIREMENTS"


class AgentName(str, Enum):
    REQUIREMENT_EXTRACTION = "REQUIREMENT_EXTRACTION"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"
    QUALITY_EVALUATION = "QUALITY_EVALUATION"
    SINGLE_PASS_ANALYSIS = "SINGLE_PASS_ANALYSIS"
    RECONCILIATION = "RECONCILIATION"
