"""Data models for FrameOps."""

from frameops.models.alignment import (
    AlignmentOutput,
    AlignmentStrategy,
    FrameMatch,
    MatchCandidate,
)
from frameops.models.errors import (
    AlignmentDegraded,
    EmptyRecordingError,
    ErrorResponse,
    FrameOpsError,
    InvalidInputError,
    ResourceError,
    RunConflictError,
    RunFailedError,
    RunNotFoundError,
    StageError,
    StageErrorKind,
    UnsupportedSourceError,
)
from frameops.models.frames import DetailLevel, ExtractedFrame, ExtractionConfig
from frameops.models.pipeline import PipelineRun, RunStage, RunStatus
from frameops.models.request import GenerationRequest
from frameops.models.sop import GenerationResult, SOPDocument, SynthesisOutput, SynthesizedStep
from frameops.models.source import VideoOrigin, VideoSource
from frameops.models.transcript import Transcript, TranscriptSegment

__all__ = [
    "AlignmentDegraded",
    "AlignmentOutput",
    "AlignmentStrategy",
    "DetailLevel",
    "EmptyRecordingError",
    "ErrorResponse",
    "ExtractedFrame",
    "ExtractionConfig",
    "FrameMatch",
    "FrameOpsError",
    "GenerationRequest",
    "GenerationResult",
    "InvalidInputError",
    "MatchCandidate",
    "PipelineRun",
    "ResourceError",
    "RunConflictError",
    "RunFailedError",
    "RunNotFoundError",
    "RunStage",
    "RunStatus",
    "SOPDocument",
    "StageError",
    "StageErrorKind",
    "SynthesisOutput",
    "SynthesizedStep",
    "Transcript",
    "TranscriptSegment",
    "UnsupportedSourceError",
    "VideoOrigin",
    "VideoSource",
]
