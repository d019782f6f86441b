"""Error handling middleware."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from frameops.models.errors import (
    ErrorResponse,
    FrameOpsError,
    InvalidInputError,
    ResourceError,
    RunConflictError,
    RunNotFoundError,
    StageError,
    StageErrorKind,
    UnsupportedSourceError,
)

logger = logging.getLogger(__name__)


async def frameops_error_handler(request: Request, exc: FrameOpsError) -> JSONResponse:
    """Handle FrameOpsError exceptions."""
    status_code = _get_status_code(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    response = ErrorResponse.from_exception(
        exc, guidance=_get_guidance(exc), retry=_is_retryable(exc)
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())


def _get_status_code(exc: FrameOpsError) -> int:
    """Map error type to HTTP status code."""
    if isinstance(exc, InvalidInputError):
        return 400
    elif isinstance(exc, RunNotFoundError):
        return 404
    elif isinstance(exc, RunConflictError):
        return 409
    elif isinstance(exc, ResourceError):
        return 503
    elif isinstance(exc, StageError) and exc.kind == StageErrorKind.SERVICE_UNAVAILABLE:
        return 503
    return 500


def _get_guidance(exc: FrameOpsError) -> str:
    """Generate actionable guidance based on error type."""
    if isinstance(exc, UnsupportedSourceError):
        return "Provide a YouTube watch, share, embed or shorts link."
    if isinstance(exc, InvalidInputError):
        return "Check the video format, size and that it is not empty."
    if isinstance(exc, RunConflictError):
        return "Poll the run status until it reaches a terminal state."
    if isinstance(exc, ResourceError):
        return "The processing services are unreachable. Try again shortly."
    return "Please try again or contact support."


def _is_retryable(exc: FrameOpsError) -> bool:
    """Determine if the error is retryable."""
    if isinstance(exc, StageError):
        return exc.kind != StageErrorKind.BAD_RESPONSE
    return isinstance(exc, (ResourceError, RunConflictError))
