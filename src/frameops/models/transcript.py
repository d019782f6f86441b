"""Transcript models."""

from pydantic import BaseModel, Field, model_validator


class TranscriptSegment(BaseModel):
    """A timed span of speech."""

    start_seconds: float = Field(..., ge=0)
    end_seconds: float = Field(..., ge=0)
    text: str = ""

    @model_validator(mode="after")
    def validate_start_before_end(self) -> "TranscriptSegment":
        if self.end_seconds < self.start_seconds:
            raise ValueError(
                f"end_seconds ({self.end_seconds}) must be >= start_seconds ({self.start_seconds})"
            )
        return self


class Transcript(BaseModel):
    """Transcription outcome. An empty transcript is a valid result."""

    text: str = ""
    segments: list[TranscriptSegment] = Field(default_factory=list)
    source: str = "none"
    fallback_reason: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @classmethod
    def empty(cls, reason: str | None = None) -> "Transcript":
        return cls(fallback_reason=reason)
