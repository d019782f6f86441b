"""Error hierarchy and error response models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class FrameOpsError(Exception):
    """Base error for all FrameOps errors."""

    def __init__(self, message: str, component: str = "", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}


class InvalidInputError(FrameOpsError):
    """Bad video source (empty payload, wrong format, oversized)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="source", details=details)


class UnsupportedSourceError(InvalidInputError):
    """Remote reference that does not resolve to a supported-host video."""


class EmptyRecordingError(InvalidInputError):
    """Live capture session stopped with zero captured bytes."""


class RunNotFoundError(FrameOpsError):
    """Unknown run or recording session id."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="pipeline", details=details)


class RunConflictError(FrameOpsError):
    """Operation not valid in the run's current state."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="pipeline", details=details)


class ResourceError(FrameOpsError):
    """External service cluster unreachable."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="resource", details=details)


class StageErrorKind(StrEnum):
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    BAD_RESPONSE = "bad_response"


class StageError(FrameOpsError):
    """A single stage invocation failed."""

    def __init__(
        self,
        kind: StageErrorKind,
        stage: str,
        message: str,
        details: dict | None = None,
    ):
        super().__init__(f"{stage} {kind.value}: {message}", component=stage, details=details)
        self.kind = kind
        self.stage = stage


class AlignmentDegraded(FrameOpsError):
    """Alignment fell back to positional mapping. Never fails a run."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="alignment", details=details)


class RunFailedError(FrameOpsError):
    """An essential stage failed (or the run was cancelled)."""

    def __init__(self, stage: str, cause: str, details: dict | None = None):
        super().__init__(f"Run failed at {stage}: {cause}", component="pipeline", details=details)
        self.stage = stage
        self.cause = cause


class ErrorResponse(BaseModel):
    """Standardized error response for API."""

    error_type: str = Field(..., description="Error category")
    component: str = Field(default="", description="Component that raised the error")
    message: str = Field(..., description="Human-readable error message")
    details: dict = Field(default_factory=dict)
    actionable_guidance: str = Field(default="", description="Suggested user action")
    retry_possible: bool = Field(default=False)

    @classmethod
    def from_exception(
        cls, exc: FrameOpsError, guidance: str = "", retry: bool = False
    ) -> "ErrorResponse":
        return cls(
            error_type=type(exc).__name__,
            component=exc.component,
            message=exc.message,
            details=exc.details,
            actionable_guidance=guidance,
            retry_possible=retry,
        )
