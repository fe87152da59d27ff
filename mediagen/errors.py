"""Error taxonomy for job intake, analysis and polling.

Fatal errors terminate the job and are recorded on its ``error`` field.
Transient errors are absorbed by the poll scheduler and logged.
"""

from typing import Any, Dict, List, Optional


class GenerationError(Exception):
    """Base class for every error the core records on a job."""

    code: str = "GENERATION_ERROR"
    fatal: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details: Dict[str, Any] = details or {}

    def to_record(self) -> Dict[str, Any]:
        """Shape stored on ``JobRecord.error``."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(GenerationError):
    """Request does not conform to the model's schema. No operation was started."""

    code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, model_id: str, exc) -> "ValidationError":
        issues: List[Dict[str, Any]] = [
            {"loc": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        summary = ", ".join(f"{i['loc']}: {i['msg']}" for i in issues)
        return cls(
            f"Validation failed for {model_id}: {summary}",
            details={"model": model_id, "issues": issues},
        )


class UnknownModelError(GenerationError):
    code = "UNKNOWN_MODEL"

    def __init__(self, model_id: Any):
        super().__init__(f"Unknown model ID: {model_id}", details={"model": str(model_id)})
        self.model_id = model_id


class AnalyzerStepError(GenerationError):
    """An AI call in the request analyzer returned empty or unparseable output."""

    code = "AI_ANALYSIS_FAILED"

    def __init__(self, step: int, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Step {step} failed: {message}", details={"step": step, **(details or {})})
        self.step = step


class BackendError(GenerationError):
    """The model backend reported an explicit error for start or poll."""

    code = "BACKEND_ERROR"


class PollTimeoutError(GenerationError):
    code = "POLL_TIMEOUT"
    fatal = False


class ExpiredError(GenerationError):
    code = "JOB_EXPIRED"


class UnknownTagError(GenerationError):
    """A placeholder in generated text has no entry in the tag map."""

    code = "UNKNOWN_TAG"
    fatal = False

    def __init__(self, placeholder: str):
        super().__init__(
            f"Placeholder {placeholder} not found in tag map",
            details={"placeholder": placeholder},
        )
        self.placeholder = placeholder


class EmptyResponseError(GenerationError):
    """The AI backend returned no candidate text."""

    code = "EMPTY_RESPONSE"
