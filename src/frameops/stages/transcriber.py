"""Transcriber client (best-effort speech-to-text)."""

import logging

from pydantic import ValidationError as PydanticValidationError

from frameops.config import Settings
from frameops.models.errors import StageError
from frameops.models.source import VideoSource
from frameops.models.transcript import Transcript, TranscriptSegment
from frameops.stages.base import BaseStageClient

logger = logging.getLogger(__name__)


class TranscriberClient(BaseStageClient):
    """Transcribes a source's audio track.

    Never raises: any failure yields an empty transcript whose
    ``fallback_reason`` says why.
    """

    stage = "transcription"

    @classmethod
    def default_timeout(cls, settings: Settings) -> float:
        return settings.transcription_timeout

    def invoke(
        self,
        source: VideoSource,
        config: dict | None = None,
        deadline: float | None = None,
    ) -> Transcript:
        try:
            return self._transcribe(source, config or {}, deadline)
        except StageError as e:
            logger.warning(f"Transcription unavailable, continuing without: {e.message}")
            return Transcript.empty(reason=e.kind.value)

    def _transcribe(self, source: VideoSource, config: dict, deadline: float | None) -> Transcript:
        if source.is_inline:
            body = self._post(
                "/whisper-transcribe-video",
                deadline,
                data={k: str(v) for k, v in config.items()},
                files={"video": (source.filename, source.payload, source.mime_type)},
            )
        else:
            body = self._post(
                "/whisper-transcribe-youtube",
                deadline,
                json={"youtubeUrl": source.reference, **config},
            )

        text = str(body.get("transcript") or "").strip()
        segments = []
        for raw in body.get("segments") or []:
            try:
                segments.append(
                    TranscriptSegment(
                        start_seconds=float(raw["start"]),
                        end_seconds=float(raw["end"]),
                        text=str(raw.get("text", "")).strip(),
                    )
                )
            except (KeyError, TypeError, ValueError, PydanticValidationError):
                continue

        if not text and segments:
            text = " ".join(s.text for s in segments if s.text)
        source_name = str(body.get("source") or "none")
        if not text:
            return Transcript(source=source_name, fallback_reason="no speech detected")

        logger.info(f"Transcribed {len(text)} chars, {len(segments)} segments ({source_name})")
        return Transcript(text=text, segments=segments, source=source_name)
