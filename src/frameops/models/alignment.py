"""Alignment data models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from frameops.models.sop import SynthesizedStep


class AlignmentStrategy(StrEnum):
    POSITIONAL = "positional"
    MATCHED = "matched"
    CLAMPED = "clamped"


class MatchCandidate(BaseModel):
    """A frame proposed for a step by the frame-step matcher."""

    frame_index: int = Field(..., ge=0)
    score: float


class FrameMatch(BaseModel):
    """Matcher result for a single step. No candidates means unmatched."""

    step_index: int = Field(..., ge=0)
    candidates: list[MatchCandidate] = Field(default_factory=list)


class AlignmentOutput(BaseModel):
    """Steps with their final source_frame_index."""

    steps: list[SynthesizedStep] = Field(default_factory=list)
    strategy: AlignmentStrategy
    confidences: list[float | None] = Field(default_factory=list)
    unmatched_steps: list[int] = Field(default_factory=list)
