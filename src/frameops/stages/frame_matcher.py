"""Frame-step matcher client (secondary alignment path)."""

import logging

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from frameops.config import Settings
from frameops.models.alignment import FrameMatch, MatchCandidate
from frameops.models.errors import StageErrorKind
from frameops.models.frames import ExtractedFrame
from frameops.stages.base import BaseStageClient

logger = logging.getLogger(__name__)


class MatchInput(BaseModel):
    frames: list[ExtractedFrame] = Field(..., min_length=1)
    step_texts: list[str] = Field(..., min_length=1)


class FrameMatcherClient(BaseStageClient):
    """Scores every frame against every step text and returns top candidates."""

    stage = "frame_matching"
    path = "/match-frames"

    def __init__(self, *args, top_k: int = 3, **kwargs):
        super().__init__(*args, **kwargs)
        self.top_k = top_k

    @classmethod
    def from_settings(cls, settings: Settings, http_client=None):
        return cls(
            settings.service_url,
            settings.matching_timeout,
            http_client=http_client,
            top_k=settings.matcher_top_k,
        )

    def invoke(
        self,
        input: MatchInput,
        config: dict | None = None,
        deadline: float | None = None,
    ) -> list[FrameMatch]:
        payload = {
            "frames": [
                {
                    "imageBase64": f.image_base64,
                    "timestamp": f.timestamp_label,
                    "timestampSeconds": f.timestamp_seconds,
                }
                for f in input.frames
            ],
            "steps": input.step_texts,
            "topK": (config or {}).get("top_k", self.top_k),
        }
        body = self._post(self.path, deadline, json=payload)

        raw_results = body.get("result")
        if not isinstance(raw_results, list):
            raise self._error(StageErrorKind.BAD_RESPONSE, "no result list in response")

        matches = [self._parse_match(i, raw) for i, raw in enumerate(raw_results)]
        matched = sum(1 for m in matches if m.candidates)
        logger.info(f"Matcher returned candidates for {matched}/{len(input.step_texts)} steps")
        return matches

    def _parse_match(self, position: int, raw: object) -> FrameMatch:
        if not isinstance(raw, dict):
            return FrameMatch(step_index=position)

        step_index = raw.get("stepIndex", position)
        if not isinstance(step_index, int) or step_index < 0:
            step_index = position

        raw_candidates = raw.get("candidates")
        if not isinstance(raw_candidates, list):
            chosen = raw.get("chosen")
            raw_candidates = [chosen] if chosen else []

        candidates = []
        for c in raw_candidates:
            if not isinstance(c, dict):
                continue
            try:
                candidates.append(
                    MatchCandidate(frame_index=int(c["candidateIndex"]), score=float(c["score"]))
                )
            except (KeyError, TypeError, ValueError, PydanticValidationError):
                continue
        return FrameMatch(step_index=step_index, candidates=candidates)
