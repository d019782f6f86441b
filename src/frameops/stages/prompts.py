"""Prompt templates and context assembly for step synthesis."""

import json

from frameops.models.frames import ExtractedFrame, format_timestamp
from frameops.models.transcript import Transcript

SYSTEM_PROMPT = (
    "You are an expert technical writer creating Standard Operating Procedure "
    "(SOP) documents from frames of a video.\n"
    "\n"
    "Rules:\n"
    "1. Produce exactly one step per image, in image order\n"
    "2. Step titles are actionable and start with a verb\n"
    "3. Descriptions explain the action, visible tools, components and hazards\n"
    "4. Only describe what is actually shown; never invent steps\n"
    "5. Visible hazards go in safetyWarnings, visible tools in toolsRequired\n"
    "\n"
    "Respond with ONLY valid JSON matching the provided schema."
)


def build_json_schema() -> dict:
    """Build the JSON schema for expected synthesizer output."""
    string_list = {"type": "array", "items": {"type": "string"}}
    return {
        "type": "object",
        "required": ["title", "description", "steps", "ppeRequirements", "materialsRequired"],
        "properties": {
            "title": {"type": "string"},
            "description": {"type": "string"},
            "ppeRequirements": string_list,
            "materialsRequired": string_list,
            "bestThumbnailIndex": {"type": "integer", "minimum": 0},
            "steps": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["title", "description"],
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "safetyWarnings": string_list,
                        "toolsRequired": string_list,
                    },
                },
            },
        },
    }


def build_transcript_context(
    transcript: Transcript,
    frames: list[ExtractedFrame],
    char_budget: int = 15000,
    full_char_budget: int = 10000,
    window: float = 8.0,
) -> str:
    """Render the transcript as a context block distinct from the instructions.

    With timed segments the full transcript is included (truncated to
    ``full_char_budget``) followed by the speech heard within ``window``
    seconds of each frame. Without segments the plain text is truncated to
    ``char_budget``.
    """
    if transcript.is_empty:
        return ""

    if transcript.segments and frames:
        full_text = " ".join(s.text for s in transcript.segments if s.text)
        lines = []
        for i, frame in enumerate(frames):
            t = frame.timestamp_seconds
            heard = " ".join(
                s.text
                for s in transcript.segments
                if s.start_seconds <= t + window and s.end_seconds >= t - window and s.text
            ).strip()
            label = frame.timestamp_label or format_timestamp(t)
            lines.append(f'Frame {i + 1} ({label}): "{heard or "no speech"}"')
        return (
            "FULL TRANSCRIPT (use this to ensure no steps are missed):\n"
            f"{full_text[:full_char_budget]}\n\n"
            "TRANSCRIPT MATCHED TO FRAMES:\n" + "\n".join(lines)
        )

    return f"VIDEO TRANSCRIPT:\n{transcript.text[:char_budget]}"


def build_synthesis_prompt(
    frame_count: int,
    title: str,
    instructions: str = "",
    transcript_context: str = "",
) -> str:
    """Build the user prompt that precedes the frame images."""
    prompt = f"""I am providing {frame_count} images, frames from a video in chronological order.
The procedure is titled: "{title}"

Analyze EACH image and create ONE step per image.
Return EXACTLY {frame_count} steps, no more and no less, in image order.
"""
    if instructions:
        prompt += f"""
## Additional Instructions
{instructions}
"""
    if transcript_context:
        prompt += f"""
## Spoken Context
The following is what was said in the video. Use it to clarify the visual
content; the images remain the primary source for each step.

{transcript_context}
"""

    prompt += f"""
## Also Provide
- An overall title and a brief description of the whole procedure
- PPE (personal protective equipment) requirements you observe
- Materials and tools required for the entire procedure
- bestThumbnailIndex: the 0-based index of the image that best represents the procedure

## Output Schema
```json
{json.dumps(build_json_schema(), indent=2)}
```"""

    return prompt
