"""Step synthesizer: vision-language generation of SOP steps from frames."""

import logging

import openai
from openai import OpenAI
from pydantic import BaseModel, Field

from frameops.config import Settings, get_settings
from frameops.models.errors import StageError, StageErrorKind
from frameops.models.frames import ExtractedFrame
from frameops.models.sop import SynthesisOutput
from frameops.models.transcript import Transcript
from frameops.stages.parser import STAGE, parse_llm_response, validate_synthesis
from frameops.stages.prompts import (
    SYSTEM_PROMPT,
    build_synthesis_prompt,
    build_transcript_context,
)

logger = logging.getLogger(__name__)


class SynthesisInput(BaseModel):
    """Ordered frames plus the free-text context for synthesis."""

    frames: list[ExtractedFrame] = Field(..., min_length=1)
    title: str = "New Procedure"
    instructions: str = ""
    transcript: Transcript = Field(default_factory=Transcript)


class StepSynthesizer:
    """Calls an OpenAI-compatible vision model to write one step per frame."""

    stage = STAGE

    def __init__(
        self,
        client: OpenAI | None = None,
        model: str | None = None,
        settings: Settings | None = None,
        timeout: float | None = None,
    ):
        self.settings = settings or get_settings()
        self.model = model or self.settings.synthesis_model
        self.timeout = timeout or self.settings.synthesis_timeout
        self.client = client
        if self.client is None and self.settings.openai_api_key:
            self.client = OpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                max_retries=0,
            )

    def invoke(
        self,
        input: SynthesisInput,
        config: dict | None = None,
        deadline: float | None = None,
    ) -> SynthesisOutput:
        if self.client is None:
            raise StageError(
                StageErrorKind.SERVICE_UNAVAILABLE, self.stage, "no synthesis model configured"
            )

        transcript_context = build_transcript_context(
            input.transcript,
            input.frames,
            char_budget=self.settings.transcript_char_budget,
            full_char_budget=self.settings.full_transcript_char_budget,
            window=self.settings.frame_transcript_window,
        )
        prompt = build_synthesis_prompt(
            frame_count=len(input.frames),
            title=input.title,
            instructions=input.instructions,
            transcript_context=transcript_context,
        )
        logger.info(
            f"Synthesizing {len(input.frames)} steps "
            f"(context {len(transcript_context)} chars, model {self.model})"
        )

        response_text = self._call_model(prompt, input.frames, config or {}, deadline)
        data = parse_llm_response(response_text)
        return validate_synthesis(data, input.frames)

    def _call_model(
        self,
        prompt: str,
        frames: list[ExtractedFrame],
        config: dict,
        deadline: float | None,
    ) -> str | None:
        timeout = deadline if deadline is not None else self.timeout
        content: list[dict] = [{"type": "text", "text": prompt}]
        for frame in frames:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:image/jpeg;base64,{frame.image_base64}",
                        "detail": config.get("image_detail", "low"),
                    },
                }
            )

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                response_format={"type": "json_object"},
                temperature=config.get("temperature", self.settings.synthesis_temperature),
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            raise StageError(
                StageErrorKind.TIMEOUT, self.stage, f"no response within {timeout:.0f}s"
            ) from e
        except openai.APIConnectionError as e:
            raise StageError(StageErrorKind.SERVICE_UNAVAILABLE, self.stage, str(e)) from e
        except openai.RateLimitError as e:
            raise StageError(StageErrorKind.SERVICE_UNAVAILABLE, self.stage, "rate limited") from e
        except openai.APIStatusError as e:
            kind = (
                StageErrorKind.SERVICE_UNAVAILABLE
                if e.status_code >= 500
                else StageErrorKind.BAD_RESPONSE
            )
            raise StageError(kind, self.stage, f"HTTP {e.status_code}") from e

        if not response.choices:
            raise StageError(StageErrorKind.BAD_RESPONSE, self.stage, "no choices in response")
        return response.choices[0].message.content
