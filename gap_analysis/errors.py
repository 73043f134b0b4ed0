"""
Error taxonomy for the gap-analysis pipeline.

Every error carries an ErrorCode, a retryable flag and the HTTP status the
API layer answers with.  Model-gateway errors are raised by
services.llm_service and branched on by the agents; store errors by the
persistence adapters; validation errors by the orchestrator before any stage
runs.
"""

from __future__ import annotations

from gap_analysis.models.enums import ErrorCode


class GapAnalysisError(Exception):
    """Base class for all typed pipeline errors."""

    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.error_code.value)
        self.message = str(self.args[0])

    def to_dict(self) -> dict[str, object]:
        return {
            "success": False,
            "error_code": self.error_code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


# ── Language-model gateway ───────────────────────────────

class ModelGatewayError(GapAnalysisError):
    """The language model could not produce a usable response."""

    error_code = ErrorCode.MODEL_UNAVAILABLE
    status_code = 502
    retryable = True


class ModelUnavailableError(ModelGatewayError):
    """The language model service is unreachable or out of quota."""

    def __init__(self, message: str = "", quota_exhausted: bool = False, retryable: bool = True) -> None:
        super().__init__(message)
        self.quota_exhausted = quota_exhausted
        self.retryable = retryable
        if quota_exhausted:
            self.error_code = ErrorCode.QUOTA_EXHAUSTED
            self.status_code = 429
        else:
            self.status_code = 503


class ContentFilteredError(ModelGatewayError):
    """The language model refused the request on safety grounds."""

    error_code = ErrorCode.CONTENT_FILTERED
    status_code = 422
    retryable = False


class ModelTimeoutError(ModelGatewayError):
    """The language model did not answer in time."""

    error_code = ErrorCode.TIMEOUT
    status_code = 504


class MalformedModelOutputError(ModelGatewayError):
    """The language model answered with output that could not be parsed."""

    error_code = ErrorCode.MALFORMED_MODEL_OUTPUT
    status_code = 502


# ── Persistence ──────────────────────────────────────────

class StoreUnavailableError(GapAnalysisError):
    """The document, requirement or report store is unavailable."""

    error_code = ErrorCode.STORE_UNAVAILABLE
    status_code = 503
    retryable = True


# ── Request validation / total-input failures ────────────

class AnalysisValidationError(GapAnalysisError):
    """The request is missing required input."""

    error_code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class DocumentNotFoundError(AnalysisValidationError):
    """The requested document does not exist."""

    error_code = ErrorCode.NOT_FOUND
    status_code = 404


class PlanContentUnavailableError(GapAnalysisError):
    """No text could be retrieved for the plan."""

    error_code = ErrorCode.PLAN_CONTENT_UNAVAILABLE
    status_code = 422


class NoRequirementsError(GapAnalysisError):
    """The selected reference documents have no extracted requirements."""

    error_code = ErrorCode.NO_REQUIREMENTS
    status_code = 422


_BY_CODE: dict[ErrorCode, type[GapAnalysisError]] = {
    ErrorCode.MODEL_UNAVAILABLE: ModelUnavailableError,
    ErrorCode.CONTENT_FILTERED: ContentFilteredError,
    ErrorCode.TIMEOUT: ModelTimeoutError,
    ErrorCode.MALFORMED_MODEL_OUTPUT: MalformedModelOutputError,
    ErrorCode.STORE_UNAVAILABLE: StoreUnavailableError,
    ErrorCode.VALIDATION_ERROR: AnalysisValidationError,
    ErrorCode.NOT_FOUND: DocumentNotFoundError,
    ErrorCode.PLAN_CONTENT_UNAVAILABLE: PlanContentUnavailableError,
    ErrorCode.NO_REQUIREMENTS: NoRequirementsError,
}


def error_from_code(code: ErrorCode | str, message: str = "") -> GapAnalysisError:
    """Rebuild the typed error recorded on a failed run."""
    code = ErrorCode(code)
    if code == ErrorCode.QUOTA_EXHAUSTED:
        return ModelUnavailableError(message, quota_exhausted=True)
    return _BY_CODE[code](message)
