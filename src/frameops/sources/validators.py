"""Payload, format and remote reference validation."""

import logging
import re
import tempfile
from pathlib import Path

import cv2

from frameops.config import get_settings
from frameops.models.errors import InvalidInputError, UnsupportedSourceError

logger = logging.getLogger(__name__)

YOUTUBE_ID_PATTERN = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|shorts/|watch\?v=|&v=)([^#&?]*).*")
YOUTUBE_HOSTS = ("youtube.com", "youtu.be", "youtube-nocookie.com")


def validate_file_format(filename: str, allowed_formats: list[str]) -> None:
    """Validate that a filename has an allowed extension."""
    ext = Path(filename).suffix.lstrip(".").lower()
    if ext not in allowed_formats:
        raise InvalidInputError(
            f"Unsupported format: .{ext}. Allowed: {allowed_formats}",
            details={"extension": ext, "allowed": allowed_formats},
        )


def validate_payload_size(payload: bytes | None, max_size_mb: int | None = None) -> None:
    """Validate that a binary payload is non-empty and within limits."""
    if not payload:
        raise InvalidInputError("Video payload is empty")
    max_mb = max_size_mb or get_settings().upload_max_size_mb
    size_mb = len(payload) / (1024 * 1024)
    if size_mb > max_mb:
        raise InvalidInputError(
            f"File too large: {size_mb:.1f}MB exceeds {max_mb}MB limit",
            details={"size_mb": size_mb, "max_mb": max_mb},
        )


def extract_video_id(url: str) -> str:
    """Resolve a remote URL to an 11-character YouTube video id."""
    candidate = (url or "").strip()
    if not any(host in candidate.lower() for host in YOUTUBE_HOSTS):
        raise UnsupportedSourceError(
            "Only YouTube video links are supported",
            details={"url": candidate[:200]},
        )
    match = YOUTUBE_ID_PATTERN.match(candidate)
    if not match or len(match.group(2)) != 11:
        raise UnsupportedSourceError(
            "Could not find a video id in the link",
            details={"url": candidate[:200]},
        )
    return match.group(2)


def probe_duration(payload: bytes, suffix: str = ".mp4") -> float | None:
    """Best-effort duration probe with OpenCV. Returns None when undecodable."""
    with tempfile.NamedTemporaryFile(suffix=suffix) as tmp:
        tmp.write(payload)
        tmp.flush()
        cap = cv2.VideoCapture(tmp.name)
        try:
            if not cap.isOpened():
                return None
            fps = cap.get(cv2.CAP_PROP_FPS)
            frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
        finally:
            cap.release()

    if fps <= 0 or frame_count <= 0:
        logger.debug(f"Could not probe duration (fps={fps}, frames={frame_count})")
        return None
    return round(frame_count / fps, 3)
