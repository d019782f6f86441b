"""Source provider: normalizes uploads, remote links and recordings into a VideoSource."""

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from frameops.config import Settings, get_settings
from frameops.models.errors import InvalidInputError
from frameops.models.source import VideoOrigin, VideoSource
from frameops.sources.recording import RecordingSession
from frameops.sources.validators import (
    extract_video_id,
    probe_duration,
    validate_file_format,
    validate_payload_size,
)

logger = logging.getLogger(__name__)


class SourceRequest(BaseModel):
    """Raw acquisition request from a caller."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    origin: VideoOrigin
    payload: bytes | None = Field(default=None, repr=False)
    url: str | None = None
    filename: str | None = None
    mime_type: str | None = None
    title: str | None = None
    recording: RecordingSession | None = None


class SourceProvider:
    """Produces VideoSource handles. Never talks to processing stages."""

    def __init__(self, settings: Settings | None = None, probe: bool = True):
        self.settings = settings or get_settings()
        self.probe = probe

    def acquire(self, request: SourceRequest) -> VideoSource:
        if request.origin == VideoOrigin.UPLOAD:
            return self.from_upload(
                request.payload,
                filename=request.filename,
                mime_type=request.mime_type,
                title=request.title,
            )
        if request.origin == VideoOrigin.REMOTE_URL:
            return self.from_remote_url(request.url or "", title=request.title)
        if request.recording is None:
            raise InvalidInputError("live_capture requests need a recording session")
        return self.from_recording(request.recording)

    def from_upload(
        self,
        payload: bytes | None,
        filename: str | None = None,
        mime_type: str | None = None,
        title: str | None = None,
    ) -> VideoSource:
        validate_payload_size(payload, self.settings.upload_max_size_mb)
        if filename:
            validate_file_format(filename, self.settings.allowed_video_formats)

        name = filename or "upload.mp4"
        duration = None
        if self.probe:
            duration = probe_duration(payload, suffix=Path(name).suffix or ".mp4")

        logger.info(f"Acquired upload {name}: {len(payload)} bytes, duration={duration}")
        return VideoSource(
            origin=VideoOrigin.UPLOAD,
            payload=payload,
            filename=name,
            mime_type=mime_type or "video/mp4",
            declared_title=title or Path(name).stem,
            duration_hint=duration,
            size_bytes=len(payload),
        )

    def from_remote_url(self, url: str, title: str | None = None) -> VideoSource:
        video_id = extract_video_id(url)
        logger.info(f"Acquired remote video {video_id}")
        return VideoSource(
            origin=VideoOrigin.REMOTE_URL,
            reference=url.strip(),
            video_id=video_id,
            declared_title=title,
        )

    def from_recording(self, session: RecordingSession) -> VideoSource:
        source = session.stop()
        if len(source.payload) / (1024 * 1024) > self.settings.upload_max_size_mb:
            raise InvalidInputError("Recording exceeds the upload size limit")
        return source
