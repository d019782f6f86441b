"""Frame-to-step alignment engine."""

import logging

from frameops.models.alignment import (
    AlignmentOutput,
    AlignmentStrategy,
    FrameMatch,
    MatchCandidate,
)
from frameops.models.frames import ExtractedFrame
from frameops.models.sop import SynthesizedStep

logger = logging.getLogger(__name__)


class AlignmentEngine:
    """Assigns each synthesized step the frame that best illustrates it.

    The synthesizer is asked for one step per frame in order, so when the
    counts agree step i keeps frame i. When they differ the positional
    contract is not trusted: matcher candidates are used if available, and
    any step left without a valid frame falls back to the last frame.
    """

    def align(
        self,
        steps: list[SynthesizedStep],
        frames: list[ExtractedFrame],
        matches: list[FrameMatch] | None = None,
    ) -> AlignmentOutput:
        if not frames:
            raise ValueError("Cannot align steps without frames")

        if not steps:
            return AlignmentOutput(strategy=AlignmentStrategy.POSITIONAL)

        if self.is_positional(steps, frames):
            aligned = [s.model_copy(update={"source_frame_index": i}) for i, s in enumerate(steps)]
            return AlignmentOutput(
                steps=self._label(aligned, frames),
                strategy=AlignmentStrategy.POSITIONAL,
                confidences=[None] * len(aligned),
            )

        if matches is not None:
            return self.align_matched(steps, frames, matches)

        return self.align_clamped(steps, frames)

    @staticmethod
    def is_positional(steps: list[SynthesizedStep], frames: list[ExtractedFrame]) -> bool:
        return len(steps) == len(frames)

    def align_clamped(
        self, steps: list[SynthesizedStep], frames: list[ExtractedFrame]
    ) -> AlignmentOutput:
        """Positional mapping with out-of-range steps clamped to the last frame."""
        last = len(frames) - 1
        aligned = []
        unmatched = []
        for i, step in enumerate(steps):
            if i > last:
                unmatched.append(i)
            aligned.append(step.model_copy(update={"source_frame_index": min(i, last)}))

        return AlignmentOutput(
            steps=self._label(aligned, frames),
            strategy=AlignmentStrategy.CLAMPED,
            confidences=[None] * len(aligned),
            unmatched_steps=unmatched,
        )

    def align_matched(
        self,
        steps: list[SynthesizedStep],
        frames: list[ExtractedFrame],
        matches: list[FrameMatch],
    ) -> AlignmentOutput:
        """Top-scoring matcher candidate per step; unmatched steps take the last frame."""
        by_step = {m.step_index: m for m in matches}
        last = len(frames) - 1
        aligned = []
        confidences: list[float | None] = []
        unmatched = []

        for i, step in enumerate(steps):
            best = self.best_candidate(by_step.get(i), frames)
            if best is None:
                unmatched.append(i)
                aligned.append(step.model_copy(update={"source_frame_index": last}))
                confidences.append(None)
            else:
                aligned.append(step.model_copy(update={"source_frame_index": best.frame_index}))
                confidences.append(round(best.score, 4))

        if unmatched:
            logger.info(f"{len(unmatched)} steps had no matching frame; using last frame")

        return AlignmentOutput(
            steps=self._label(aligned, frames),
            strategy=AlignmentStrategy.MATCHED,
            confidences=confidences,
            unmatched_steps=unmatched,
        )

    @staticmethod
    def best_candidate(
        match: FrameMatch | None, frames: list[ExtractedFrame]
    ) -> MatchCandidate | None:
        """Highest score wins; ties go to the earliest frame."""
        if match is None:
            return None
        valid = [c for c in match.candidates if 0 <= c.frame_index < len(frames)]
        if not valid:
            return None
        return max(
            valid,
            key=lambda c: (c.score, -frames[c.frame_index].timestamp_seconds),
        )

    @staticmethod
    def _label(steps: list[SynthesizedStep], frames: list[ExtractedFrame]) -> list[SynthesizedStep]:
        return [
            s.model_copy(update={"timestamp_label": frames[s.source_frame_index].timestamp_label})
            for s in steps
        ]
