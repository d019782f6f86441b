"""Shared test fixtures, fake stage clients and test media generators."""

import base64
import tempfile
import time
from pathlib import Path

import httpx
import pytest

from frameops.config import Settings
from frameops.models.alignment import FrameMatch, MatchCandidate
from frameops.models.errors import StageError, StageErrorKind
from frameops.models.frames import ExtractedFrame, format_timestamp
from frameops.models.sop import SynthesisOutput, SynthesizedStep
from frameops.models.source import VideoOrigin, VideoSource
from frameops.models.transcript import Transcript, TranscriptSegment

# JPEG start and end markers around a zeroed body
TINY_JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16 + b"\xff\xd9"
TINY_JPEG_B64 = base64.b64encode(TINY_JPEG).decode("ascii")


def make_frames(count: int, spacing: float = 5.0) -> list[ExtractedFrame]:
    """Build ``count`` frames with strictly increasing timestamps."""
    return [
        ExtractedFrame(
            index=i,
            timestamp_seconds=i * spacing,
            image_base64=TINY_JPEG_B64,
            byte_size=len(TINY_JPEG),
            timestamp_label=format_timestamp(i * spacing),
        )
        for i in range(count)
    ]


def make_steps(count: int) -> list[SynthesizedStep]:
    """Build ``count`` steps, step i anchored to frame i."""
    return [
        SynthesizedStep(
            title=f"Step {i + 1}", description=f"Do thing {i + 1}", source_frame_index=i
        )
        for i in range(count)
    ]


def raw_frames(count: int, spacing: float = 5.0) -> list[dict]:
    """Frame payloads as the extraction service returns them."""
    return [
        {
            "imageBase64": f"data:image/jpeg;base64,{TINY_JPEG_B64}",
            "timestamp": format_timestamp(i * spacing),
            "timestampSeconds": i * spacing,
            "size": len(TINY_JPEG),
        }
        for i in range(count)
    ]


def mock_http_client(handler) -> httpx.Client:
    """httpx client whose requests are answered by ``handler(request)``."""
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def test_settings(tmp_dir):
    return Settings(
        service_url="http://services.test",
        openai_api_key="",
        document_store_dir=tmp_dir / "documents",
        transcription_timeout=2.0,
        check_health_before_run=False,
    )


@pytest.fixture
def upload_source():
    return VideoSource(
        origin=VideoOrigin.UPLOAD,
        payload=b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64,
        filename="changing-a-filter.mp4",
        declared_title="changing-a-filter",
        size_bytes=76,
    )


@pytest.fixture
def remote_source():
    return VideoSource(
        origin=VideoOrigin.REMOTE_URL,
        reference="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        video_id="dQw4w9WgXcQ",
    )


@pytest.fixture
def sample_transcript():
    return Transcript(
        text="First remove the cover. Then unscrew the old filter.",
        segments=[
            TranscriptSegment(start_seconds=0.0, end_seconds=3.0, text="First remove the cover."),
            TranscriptSegment(
                start_seconds=4.0, end_seconds=9.0, text="Then unscrew the old filter."
            ),
        ],
        source="whisper",
    )


class FakeExtractor:
    """Frame extractor stand-in returning a fixed number of frames."""

    def __init__(self, count: int = 12, error: StageError | None = None):
        self.count = count
        self.error = error
        self.calls = 0

    def invoke(self, source, config=None, deadline=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return make_frames(self.count)


class FakeTranscriber:
    """Transcriber stand-in; ``delay`` simulates a slow service."""

    def __init__(self, transcript: Transcript | None = None, delay: float = 0.0):
        self.transcript = transcript if transcript is not None else Transcript.empty("no speech")
        self.delay = delay
        self.calls = 0

    def invoke(self, source, config=None, deadline=None):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.transcript


class FakeSynthesizer:
    """Step synthesizer stand-in producing ``step_count`` steps (default: one per frame)."""

    def __init__(self, step_count: int | None = None, error: StageError | None = None):
        self.step_count = step_count
        self.error = error
        self.inputs = []

    def invoke(self, input, config=None, deadline=None):
        self.inputs.append(input)
        if self.error is not None:
            raise self.error
        count = self.step_count if self.step_count is not None else len(input.frames)
        return SynthesisOutput(
            title="Changing a Filter",
            description="How to change the intake filter",
            ppe_requirements=["Gloves"],
            materials_required=["Replacement filter"],
            steps=make_steps(count),
            thumbnail_frame_index=2,
        )


class FakeMatcher:
    """Matcher stand-in: step i -> frame i, except the listed unmatched steps."""

    def __init__(self, unmatched: set[int] | None = None, error: StageError | None = None):
        self.unmatched = unmatched or set()
        self.error = error
        self.calls = 0

    def invoke(self, input, config=None, deadline=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [
            FrameMatch(
                step_index=i,
                candidates=[]
                if i in self.unmatched
                else [MatchCandidate(frame_index=i, score=0.9)],
            )
            for i in range(len(input.step_texts))
        ]


def stage_error(kind: StageErrorKind = StageErrorKind.TIMEOUT, stage: str = "frame_extraction"):
    return StageError(kind, stage, "simulated failure")


def generate_test_video(path: Path, frames: int = 30, fps: float = 10.0) -> Path:
    """Write a small MJPG-encoded AVI with OpenCV."""
    import cv2
    import numpy as np

    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (64, 48))
    for i in range(frames):
        image = np.full((48, 64, 3), (i * 8) % 255, dtype=np.uint8)
        writer.write(image)
    writer.release()
    return path
