"""Extracted frame and extraction configuration models."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator


class DetailLevel(StrEnum):
    """How finely a procedure is split into steps."""

    QUICK = "quick"
    NORMAL = "normal"
    DETAILED = "detailed"


class ExtractedFrame(BaseModel):
    """A single scene-detected frame."""

    index: int = Field(..., ge=0)
    timestamp_seconds: float = Field(..., ge=0)
    image_base64: str = Field(..., min_length=1, repr=False)
    byte_size: int = Field(default=0, ge=0)
    timestamp_label: str = Field(default="", description="mm:ss label")

    @field_validator("image_base64")
    @classmethod
    def strip_data_url(cls, v: str) -> str:
        if "base64," in v:
            return v.split("base64,", 1)[1]
        return v


class ExtractionConfig(BaseModel):
    """Scene detection parameters sent to the frame extractor."""

    scene_threshold: float = Field(default=0.3, gt=0, le=1)
    min_frames: int = Field(default=12, ge=1)
    max_frames: int = Field(default=25, ge=1)

    @model_validator(mode="after")
    def validate_frame_band(self) -> "ExtractionConfig":
        if self.min_frames > self.max_frames:
            raise ValueError(
                f"min_frames ({self.min_frames}) must be <= max_frames ({self.max_frames})"
            )
        return self

    @classmethod
    def for_detail_level(cls, level: DetailLevel | str) -> "ExtractionConfig":
        return DETAIL_PRESETS[DetailLevel(level)].model_copy()


DETAIL_PRESETS: dict[DetailLevel, ExtractionConfig] = {
    DetailLevel.QUICK: ExtractionConfig(scene_threshold=0.45, min_frames=6, max_frames=12),
    DetailLevel.NORMAL: ExtractionConfig(scene_threshold=0.30, min_frames=12, max_frames=25),
    DetailLevel.DETAILED: ExtractionConfig(scene_threshold=0.20, min_frames=20, max_frames=50),
}


def format_timestamp(seconds: float) -> str:
    """Format seconds as mm:ss."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


def validate_frame_sequence(frames: list[ExtractedFrame]) -> None:
    """Raise ValueError unless timestamps are strictly increasing."""
    for i in range(1, len(frames)):
        if frames[i].timestamp_seconds <= frames[i - 1].timestamp_seconds:
            raise ValueError("Frame timestamps must be strictly increasing")
