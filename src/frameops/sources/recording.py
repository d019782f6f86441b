"""Bounded live recording session."""

import logging
import threading
import uuid
from datetime import UTC, datetime
from enum import StrEnum

from frameops.config import get_settings
from frameops.models.errors import EmptyRecordingError, InvalidInputError
from frameops.models.source import VideoOrigin, VideoSource

logger = logging.getLogger(__name__)


class RecordingState(StrEnum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class RecordingSession:
    """Collects media chunks between start() and stop().

    The session is bounded by a chunk count and a byte budget. stop()
    concatenates the chunks in arrival order into one VideoSource.
    """

    def __init__(
        self,
        mime_type: str = "video/webm",
        title: str | None = None,
        max_chunks: int | None = None,
        max_bytes: int | None = None,
    ):
        settings = get_settings()
        self.id = str(uuid.uuid4())
        self.mime_type = mime_type
        self.title = title
        self.max_chunks = max_chunks or settings.recording_max_chunks
        self.max_bytes = max_bytes or settings.recording_max_size_mb * 1024 * 1024
        self.state = RecordingState.IDLE
        self.started_at: datetime | None = None
        self.stopped_at: datetime | None = None
        self.last_activity_at = datetime.now(UTC)
        self._chunks: list[bytes] = []
        self._size = 0
        self._lock = threading.Lock()

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def size_bytes(self) -> int:
        return self._size

    def start(self) -> None:
        with self._lock:
            if self.state != RecordingState.IDLE:
                raise InvalidInputError(f"Recording already {self.state.value}")
            self.state = RecordingState.RECORDING
            self.started_at = datetime.now(UTC)
            self.last_activity_at = self.started_at
        logger.info(f"Recording {self.id} started ({self.mime_type})")

    def add_chunk(self, chunk: bytes) -> int:
        """Buffer one chunk and return the total captured size."""
        with self._lock:
            if self.state != RecordingState.RECORDING:
                raise InvalidInputError(
                    f"Cannot add chunks while recording is {self.state.value}"
                )
            if not chunk:
                return self._size
            if len(self._chunks) >= self.max_chunks:
                raise InvalidInputError(
                    f"Recording exceeded {self.max_chunks} chunks",
                    details={"max_chunks": self.max_chunks},
                )
            if self._size + len(chunk) > self.max_bytes:
                raise InvalidInputError(
                    f"Recording exceeded {self.max_bytes} bytes",
                    details={"max_bytes": self.max_bytes},
                )
            self._chunks.append(bytes(chunk))
            self._size += len(chunk)
            self.last_activity_at = datetime.now(UTC)
            return self._size

    def stop(self) -> VideoSource:
        """Finish the session and return the captured recording."""
        with self._lock:
            if self.state != RecordingState.RECORDING:
                raise InvalidInputError(f"Cannot stop a recording that is {self.state.value}")
            self.state = RecordingState.STOPPED
            self.stopped_at = datetime.now(UTC)
            payload = b"".join(self._chunks)
            self._chunks.clear()

        if not payload:
            raise EmptyRecordingError("No video data was captured")

        duration = None
        if self.started_at is not None:
            duration = round((self.stopped_at - self.started_at).total_seconds(), 3)

        logger.info(f"Recording {self.id} stopped: {len(payload)} bytes")
        extension = "webm" if "webm" in self.mime_type else "mp4"
        return VideoSource(
            origin=VideoOrigin.LIVE_CAPTURE,
            payload=payload,
            filename=f"recording-{self.id[:8]}.{extension}",
            mime_type=self.mime_type,
            declared_title=self.title,
            duration_hint=duration,
            size_bytes=len(payload),
        )
