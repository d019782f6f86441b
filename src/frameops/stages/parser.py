"""Synthesizer response parser."""

import json
import logging
import re

from pydantic import ValidationError as PydanticValidationError

from frameops.models.errors import StageError, StageErrorKind
from frameops.models.frames import ExtractedFrame
from frameops.models.sop import SynthesisOutput, SynthesizedStep

logger = logging.getLogger(__name__)

STAGE = "step_synthesis"


def parse_llm_response(response_text: str | None) -> dict:
    """Parse a model response, handling markdown-wrapped JSON."""
    text = (response_text or "").strip()
    if not text:
        raise StageError(StageErrorKind.BAD_RESPONSE, STAGE, "empty response")

    json_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if json_match:
        text = json_match.group(1).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        brace_match = re.search(r"\{.*\}", text, re.DOTALL)
        data = None
        if brace_match:
            try:
                data = json.loads(brace_match.group())
            except json.JSONDecodeError:
                data = None
        if data is None:
            raise StageError(
                StageErrorKind.BAD_RESPONSE,
                STAGE,
                f"response is not valid JSON: {e}",
                details={"response_preview": text[:200]},
            ) from e

    if not isinstance(data, dict):
        raise StageError(StageErrorKind.BAD_RESPONSE, STAGE, "response is not a JSON object")
    return data


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def validate_synthesis(data: dict, frames: list[ExtractedFrame]) -> SynthesisOutput:
    """Build a SynthesisOutput with step i initially anchored to frame i.

    Invalid steps are skipped and steps beyond the frame count are dropped.
    """
    steps: list[SynthesizedStep] = []
    for raw in data.get("steps") or []:
        if not isinstance(raw, dict):
            continue
        index = len(steps)
        try:
            step = SynthesizedStep(
                title=str(raw.get("title", "")).strip(),
                description=str(raw.get("description", "")).strip(),
                safety_warnings=_string_list(raw.get("safetyWarnings", raw.get("safety_warnings"))),
                tools_required=_string_list(raw.get("toolsRequired", raw.get("tools_required"))),
                source_frame_index=index,
                timestamp_label=frames[index].timestamp_label if index < len(frames) else "",
            )
        except PydanticValidationError:
            continue
        steps.append(step)

    if not steps:
        raise StageError(StageErrorKind.BAD_RESPONSE, STAGE, "no usable steps in response")

    if len(steps) > len(frames):
        logger.warning(
            f"Synthesizer returned {len(steps)} steps for {len(frames)} frames; truncating"
        )
        steps = steps[: len(frames)]

    thumbnail = data.get("bestThumbnailIndex")
    if isinstance(thumbnail, bool) or not isinstance(thumbnail, int):
        thumbnail = None
    elif not 0 <= thumbnail < len(frames):
        thumbnail = None

    return SynthesisOutput(
        title=str(data.get("title") or "").strip(),
        description=str(data.get("description") or "").strip(),
        ppe_requirements=_string_list(data.get("ppeRequirements", data.get("ppe_requirements"))),
        materials_required=_string_list(
            data.get("materialsRequired", data.get("materials_required"))
        ),
        steps=steps,
        thumbnail_frame_index=thumbnail,
    )
