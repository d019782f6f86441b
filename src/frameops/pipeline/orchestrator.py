"""Pipeline orchestrator: runs one generation job through its stages.

Stage order: initialized -> extracting_frames (transcription runs alongside)
-> transcribing (join) -> synthesizing -> aligning -> assembling -> completed.
Frame extraction and step synthesis are essential; transcription and
alignment degrade instead of failing the run. No stage is retried.
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import TypeVar

from frameops.alignment.engine import AlignmentEngine
from frameops.config import Settings, get_settings
from frameops.models.alignment import AlignmentOutput
from frameops.models.errors import AlignmentDegraded, RunFailedError, StageError
from frameops.models.frames import ExtractedFrame
from frameops.models.pipeline import PipelineRun, RunStage
from frameops.models.request import GenerationRequest
from frameops.models.sop import GenerationResult, SOPDocument, SynthesisOutput, SynthesizedStep
from frameops.models.source import VideoSource
from frameops.models.transcript import Transcript
from frameops.stages.frame_extractor import FrameExtractorClient
from frameops.stages.frame_matcher import FrameMatcherClient, MatchInput
from frameops.stages.step_synthesizer import StepSynthesizer, SynthesisInput
from frameops.stages.transcriber import TranscriberClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Progress milestones (percent)
STARTED = 5
EXTRACTION_DISPATCHED = 10
FRAMES_EXTRACTED = 40
TRANSCRIPT_RESOLVED = 50
SYNTHESIS_DISPATCHED = 60
STEPS_SYNTHESIZED = 90
STEPS_ALIGNED = 95

JOIN_GRACE_SECONDS = 1.0
DEFAULT_TITLE = "New Procedure"


@dataclass
class _RunContext:
    run: PipelineRun
    is_cancelled: Callable[[], bool] | None = None
    on_update: Callable[[PipelineRun], None] | None = None


class PipelineOrchestrator:
    """Sequences the stage clients for a single run at a time per call."""

    def __init__(
        self,
        frame_extractor: FrameExtractorClient,
        transcriber: TranscriberClient,
        synthesizer: StepSynthesizer,
        matcher: FrameMatcherClient | None = None,
        aligner: AlignmentEngine | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.frame_extractor = frame_extractor
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.matcher = matcher
        self.aligner = aligner or AlignmentEngine()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineOrchestrator":
        settings = settings or get_settings()
        return cls(
            frame_extractor=FrameExtractorClient.from_settings(settings),
            transcriber=TranscriberClient.from_settings(settings),
            synthesizer=StepSynthesizer(settings=settings),
            matcher=(
                FrameMatcherClient.from_settings(settings) if settings.use_frame_matcher else None
            ),
            settings=settings,
        )

    def execute(
        self,
        run: PipelineRun,
        source: VideoSource,
        request: GenerationRequest | None = None,
        is_cancelled: Callable[[], bool] | None = None,
        on_update: Callable[[PipelineRun], None] | None = None,
    ) -> GenerationResult:
        """Run every stage; returns the result or raises RunFailedError.

        ``run`` is mutated in place and ends completed or failed.
        """
        ctx = _RunContext(run=run, is_cancelled=is_cancelled, on_update=on_update)
        request = request or GenerationRequest()

        try:
            return self._execute(ctx, source, request)
        except RunFailedError as e:
            self._fail(ctx, RunStage(e.stage), e.cause)
            raise
        except Exception as e:
            stage = run.current_stage
            logger.exception(f"Run {run.id} crashed in {stage.value}")
            self._fail(ctx, stage, str(e) or type(e).__name__)
            raise RunFailedError(stage.value, str(e) or type(e).__name__) from e

    def _execute(
        self, ctx: _RunContext, source: VideoSource, request: GenerationRequest
    ) -> GenerationResult:
        config = request.extraction_config()
        self._update(
            ctx,
            RunStage.INITIALIZED,
            STARTED,
            f"Using {request.detail_level.value} mode ({config.min_frames}-{config.max_frames} "
            f"frames, threshold {config.scene_threshold})",
        )
        self._check_cancelled(ctx)

        # Fork: transcription runs while frames are extracted
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"run-{ctx.run.id[:8]}")
        try:
            transcript_future = None
            transcription_started = time.monotonic()
            if request.transcribe:
                transcript_future = executor.submit(
                    self.transcriber.invoke, source, None, self.settings.transcription_timeout
                )

            self._update(
                ctx,
                RunStage.EXTRACTING_FRAMES,
                EXTRACTION_DISPATCHED,
                "Extracting frames with scene detection...",
            )
            frames = self._essential(
                RunStage.EXTRACTING_FRAMES,
                lambda: self.frame_extractor.invoke(
                    source, config, self.settings.extraction_timeout
                ),
            )
            self._update(
                ctx,
                RunStage.EXTRACTING_FRAMES,
                FRAMES_EXTRACTED,
                f"Extracted {len(frames)} scene-detected frames",
            )
            self._check_cancelled(ctx)

            # Join: bounded by the transcription deadline
            self._update(ctx, RunStage.TRANSCRIBING)
            transcript = self._join_transcript(ctx, transcript_future, transcription_started)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        self._check_cancelled(ctx)
        title = request.title or source.declared_title or DEFAULT_TITLE
        self._update(
            ctx,
            RunStage.SYNTHESIZING,
            SYNTHESIS_DISPATCHED,
            "Analyzing with transcript..."
            if not transcript.is_empty
            else "Analyzing frames only (no transcript)...",
        )
        synthesis = self._essential(
            RunStage.SYNTHESIZING,
            lambda: self.synthesizer.invoke(
                SynthesisInput(
                    frames=frames,
                    title=title,
                    instructions=request.additional_instructions,
                    transcript=transcript,
                ),
                None,
                self.settings.synthesis_timeout,
            ),
        )
        self._update(
            ctx,
            RunStage.SYNTHESIZING,
            STEPS_SYNTHESIZED,
            f"Synthesized {len(synthesis.steps)} steps for {len(frames)} frames",
        )
        self._check_cancelled(ctx)

        self._update(ctx, RunStage.ALIGNING)
        alignment = self._align(ctx, synthesis.steps, frames)
        self._update(
            ctx,
            RunStage.ALIGNING,
            STEPS_ALIGNED,
            f"Mapped {len(alignment.steps)} steps to {len(frames)} frames "
            f"({alignment.strategy.value})",
        )
        self._check_cancelled(ctx)

        self._update(ctx, RunStage.ASSEMBLING)
        result = self.assemble(source, request, synthesis, alignment.steps, frames, transcript)
        ctx.run.complete(result, f"SOP assembled: {len(result.document.steps)} steps")
        self._notify(ctx)
        logger.info(f"Run {ctx.run.id} completed with {len(result.document.steps)} steps")
        return result

    def _join_transcript(
        self, ctx: _RunContext, future: Future | None, started: float
    ) -> Transcript:
        if future is None:
            transcript = Transcript.empty(reason="disabled")
        else:
            remaining = self.settings.transcription_timeout - (time.monotonic() - started)
            try:
                transcript = future.result(timeout=max(0.0, remaining) + JOIN_GRACE_SECONDS)
            except FutureTimeoutError:
                future.cancel()
                transcript = Transcript.empty(reason="timeout")
            except Exception as e:
                logger.warning(f"Transcription crashed, continuing without: {e}")
                transcript = Transcript.empty(reason="error")

        if transcript.is_empty:
            reason = transcript.fallback_reason or "empty"
            if reason != "disabled":
                logger.warning(f"Run {ctx.run.id}: transcript unavailable ({reason})")
                ctx.run.degrade(
                    f"Transcript unavailable ({reason}) - continuing with visual analysis only"
                )
            self._update(ctx, RunStage.TRANSCRIBING, TRANSCRIPT_RESOLVED)
        else:
            self._update(
                ctx,
                RunStage.TRANSCRIBING,
                TRANSCRIPT_RESOLVED,
                f"Transcript loaded: {len(transcript.text)} chars, "
                f"{len(transcript.segments)} segments",
            )
        return transcript

    def _align(
        self, ctx: _RunContext, steps: list[SynthesizedStep], frames: list[ExtractedFrame]
    ) -> AlignmentOutput:
        matches = None
        degraded: AlignmentDegraded | None = None

        if not self.aligner.is_positional(steps, frames):
            if self.matcher is None:
                degraded = AlignmentDegraded(
                    f"{len(steps)} steps for {len(frames)} frames and no matcher; "
                    "using clamped positional mapping"
                )
            else:
                step_texts = [f"{s.title}. {s.description}".strip() for s in steps]
                try:
                    matches = self.matcher.invoke(
                        MatchInput(frames=frames, step_texts=step_texts),
                        None,
                        self.settings.matching_timeout,
                    )
                except StageError as e:
                    degraded = AlignmentDegraded(
                        f"Frame matching unavailable ({e.kind.value}); "
                        "using clamped positional mapping"
                    )

        try:
            alignment = self.aligner.align(steps, frames, matches)
        except (ValueError, IndexError) as e:
            degraded = AlignmentDegraded(
                f"Alignment failed ({e}); using clamped positional mapping"
            )
            alignment = self.aligner.align_clamped(steps, frames)

        if degraded is not None:
            logger.warning(f"Run {ctx.run.id}: {degraded.message}")
            ctx.run.degrade(degraded.message)
            self._notify(ctx)
        return alignment

    def assemble(
        self,
        source: VideoSource,
        request: GenerationRequest,
        synthesis: SynthesisOutput,
        steps: list[SynthesizedStep],
        frames: list[ExtractedFrame],
        transcript: Transcript,
    ) -> GenerationResult:
        """Build the terminal document handed to persistence."""
        thumbnail = synthesis.thumbnail_frame_index
        if thumbnail is None or thumbnail >= len(frames):
            thumbnail = len(frames) // 3

        document = SOPDocument(
            title=request.title or synthesis.title or source.declared_title or DEFAULT_TITLE,
            description=synthesis.description,
            ppe_requirements=synthesis.ppe_requirements,
            materials_required=synthesis.materials_required,
            steps=steps,
            source_origin=source.origin,
            source_reference=source.reference,
            thumbnail_frame_index=thumbnail,
        )
        return GenerationResult(document=document, frames=frames, transcript=transcript.text)

    def _essential(self, stage: RunStage, call: Callable[[], T]) -> T:
        try:
            return call()
        except StageError as e:
            logger.error(f"Essential stage {stage.value} failed: {e.message}")
            raise RunFailedError(stage.value, e.message, details={"kind": e.kind.value}) from e

    def _update(
        self,
        ctx: _RunContext,
        stage: RunStage,
        percentage: float | None = None,
        message: str = "",
    ) -> None:
        ctx.run.advance(stage, percentage, message)
        if message:
            logger.info(f"Run {ctx.run.id} [{stage.value} {ctx.run.percentage:.0f}%] {message}")
        self._notify(ctx)

    def _fail(self, ctx: _RunContext, stage: RunStage, cause: str) -> None:
        ctx.run.fail(stage, cause)
        self._notify(ctx)

    def _notify(self, ctx: _RunContext) -> None:
        if ctx.on_update is not None:
            ctx.on_update(ctx.run.model_copy(deep=True))

    def _check_cancelled(self, ctx: _RunContext) -> None:
        if ctx.is_cancelled is not None and ctx.is_cancelled():
            raise RunFailedError(ctx.run.current_stage.value, "cancelled")
