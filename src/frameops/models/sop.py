"""SOP document models."""

from pydantic import BaseModel, Field

from frameops.models.frames import ExtractedFrame
from frameops.models.source import VideoOrigin


class SynthesizedStep(BaseModel):
    """One procedure step, anchored to the frame that illustrates it."""

    title: str = Field(..., min_length=1)
    description: str = ""
    safety_warnings: list[str] = Field(default_factory=list)
    tools_required: list[str] = Field(default_factory=list)
    source_frame_index: int = Field(..., ge=0)
    timestamp_label: str = ""


class SynthesisOutput(BaseModel):
    """Structured output of the step synthesizer."""

    title: str = ""
    description: str = ""
    ppe_requirements: list[str] = Field(default_factory=list)
    materials_required: list[str] = Field(default_factory=list)
    steps: list[SynthesizedStep] = Field(default_factory=list)
    thumbnail_frame_index: int | None = Field(default=None, ge=0)


class SOPDocument(BaseModel):
    """Terminal artifact of a run."""

    title: str
    description: str = ""
    ppe_requirements: list[str] = Field(default_factory=list)
    materials_required: list[str] = Field(default_factory=list)
    steps: list[SynthesizedStep] = Field(default_factory=list)
    source_origin: VideoOrigin
    source_reference: str | None = None
    thumbnail_frame_index: int = Field(default=0, ge=0)


class GenerationResult(BaseModel):
    """What the persistence collaborator receives for a completed run."""

    document: SOPDocument
    frames: list[ExtractedFrame] = Field(default_factory=list, repr=False)
    transcript: str = ""

    def frame_for_step(self, step: SynthesizedStep) -> ExtractedFrame:
        return self.frames[step.source_frame_index]
