"""Video source models."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VideoOrigin(StrEnum):
    """Where a video came from."""

    UPLOAD = "upload"
    REMOTE_URL = "remote_url"
    LIVE_CAPTURE = "live_capture"


class VideoSource(BaseModel):
    """Normalized handle to one video, consumed by exactly one run."""

    model_config = ConfigDict(frozen=True)

    origin: VideoOrigin
    payload: bytes | None = Field(default=None, repr=False)
    reference: str | None = Field(default=None, description="Remote video URL")
    video_id: str | None = Field(default=None, description="Supported-host video identifier")
    filename: str = Field(default="video.mp4")
    mime_type: str = Field(default="video/mp4")
    declared_title: str | None = None
    duration_hint: float | None = Field(default=None, ge=0)
    size_bytes: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_payload_or_reference(self) -> "VideoSource":
        if self.origin == VideoOrigin.REMOTE_URL:
            if not self.reference:
                raise ValueError("remote_url sources need a reference")
            if self.payload is not None:
                raise ValueError("remote_url sources carry no payload")
        elif not self.payload:
            raise ValueError(f"{self.origin.value} sources need a non-empty payload")
        return self

    @property
    def is_inline(self) -> bool:
        return self.payload is not None
