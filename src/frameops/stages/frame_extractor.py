"""Frame extractor client (scene-detection service)."""

import logging

import numpy as np
from pydantic import ValidationError as PydanticValidationError

from frameops.config import Settings
from frameops.models.errors import StageErrorKind
from frameops.models.frames import (
    ExtractedFrame,
    ExtractionConfig,
    format_timestamp,
    validate_frame_sequence,
)
from frameops.models.source import VideoSource
from frameops.stages.base import BaseStageClient

logger = logging.getLogger(__name__)


class FrameExtractorClient(BaseStageClient):
    """Requests scene-change frames for a video source."""

    stage = "frame_extraction"
    path = "/extract-frames-scene-detect"

    @classmethod
    def default_timeout(cls, settings: Settings) -> float:
        return settings.extraction_timeout

    def invoke(
        self,
        source: VideoSource,
        config: ExtractionConfig | None = None,
        deadline: float | None = None,
    ) -> list[ExtractedFrame]:
        config = config or ExtractionConfig()
        options = {
            "sceneThreshold": config.scene_threshold,
            "maxFrames": config.max_frames,
            "minFrames": config.min_frames,
            "skipWhisper": True,
        }

        if source.is_inline:
            form = {
                k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in options.items()
            }
            body = self._post(
                self.path,
                deadline,
                data=form,
                files={"video": (source.filename, source.payload, source.mime_type)},
            )
        else:
            body = self._post(self.path, deadline, json={"youtubeUrl": source.reference, **options})

        frames = self.parse_frames(body.get("frames"))
        frames = self.clamp_frames(frames, config)
        try:
            validate_frame_sequence(frames)
        except ValueError as e:
            raise self._error(StageErrorKind.BAD_RESPONSE, str(e)) from e
        if len(frames) < config.min_frames:
            logger.info(
                f"Extractor returned {len(frames)} frames (< min {config.min_frames}); "
                "source is likely too short"
            )
        return frames

    def parse_frames(self, raw_frames: object) -> list[ExtractedFrame]:
        """Build a strictly increasing, re-indexed frame sequence."""
        if not isinstance(raw_frames, list) or not raw_frames:
            raise self._error(StageErrorKind.BAD_RESPONSE, "no frames in response")

        parsed: list[ExtractedFrame] = []
        for i, raw in enumerate(raw_frames):
            if not isinstance(raw, dict):
                continue
            try:
                seconds = float(raw.get("timestampSeconds", raw.get("timestamp_seconds")))
                image = raw.get("imageBase64") or raw.get("image_base64") or ""
                parsed.append(
                    ExtractedFrame(
                        index=i,
                        timestamp_seconds=seconds,
                        image_base64=image,
                        byte_size=int(raw.get("size", 0) or 0),
                        timestamp_label=str(raw.get("timestamp") or format_timestamp(seconds)),
                    )
                )
            except (TypeError, ValueError, PydanticValidationError):
                logger.warning(f"Skipping malformed frame {i} from extractor")

        parsed.sort(key=lambda f: f.timestamp_seconds)
        unique: list[ExtractedFrame] = []
        for frame in parsed:
            if unique and frame.timestamp_seconds <= unique[-1].timestamp_seconds:
                continue
            unique.append(frame)

        if not unique:
            raise self._error(StageErrorKind.BAD_RESPONSE, "no decodable frames in response")
        return [f.model_copy(update={"index": i}) for i, f in enumerate(unique)]

    @staticmethod
    def clamp_frames(
        frames: list[ExtractedFrame], config: ExtractionConfig
    ) -> list[ExtractedFrame]:
        """Evenly down-sample to max_frames, keeping first and last."""
        if len(frames) <= config.max_frames:
            return frames
        keep = np.linspace(0, len(frames) - 1, config.max_frames).round().astype(int)
        logger.info(f"Down-sampling {len(frames)} frames to {config.max_frames}")
        return [frames[int(k)].model_copy(update={"index": i}) for i, k in enumerate(keep)]
