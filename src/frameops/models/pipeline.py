"""Pipeline run and stage models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from frameops.models.sop import GenerationResult


class RunStage(StrEnum):
    """Stages of a generation run."""

    INITIALIZED = "initialized"
    EXTRACTING_FRAMES = "extracting_frames"
    TRANSCRIBING = "transcribing"
    SYNTHESIZING = "synthesizing"
    ALIGNING = "aligning"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineRun(BaseModel):
    """Progress record of one generation run.

    ``percentage`` never decreases and ``log`` holds the most recent
    ``log_capacity`` messages, newest first.
    """

    id: str = Field(..., min_length=1)
    current_stage: RunStage = RunStage.INITIALIZED
    status: RunStatus = RunStatus.RUNNING
    percentage: float = Field(default=0.0, ge=0, le=100)
    log: list[str] = Field(default_factory=list)
    log_capacity: int = Field(default=5, ge=1)
    degradations: list[str] = Field(default_factory=list)
    failed_stage: RunStage | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    result: GenerationResult | None = Field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING

    def push_log(self, message: str) -> None:
        """Prepend a message, evicting the oldest past capacity."""
        self.log = [message, *self.log][: self.log_capacity]
        self.updated_at = datetime.now(UTC)

    def advance(self, stage: RunStage, percentage: float | None = None, message: str = "") -> None:
        """Move to a stage; percentage only ever moves forward."""
        if self.is_terminal:
            return
        self.current_stage = stage
        if percentage is not None:
            self.percentage = max(self.percentage, min(100.0, float(percentage)))
        if message:
            self.push_log(message)
        self.updated_at = datetime.now(UTC)

    def degrade(self, note: str) -> None:
        """Record a non-fatal fallback."""
        self.degradations.append(note)
        self.push_log(note)

    def complete(self, result: GenerationResult, message: str = "SOP generation complete") -> None:
        self.advance(RunStage.COMPLETED, 100.0, message)
        self.status = RunStatus.COMPLETED
        self.result = result
        self.completed_at = datetime.now(UTC)

    def fail(self, stage: RunStage, cause: str) -> None:
        if self.is_terminal:
            return
        self.failed_stage = stage
        self.error = cause
        self.current_stage = RunStage.FAILED
        self.status = RunStatus.FAILED
        self.result = None
        self.completed_at = datetime.now(UTC)
        self.push_log(f"Pipeline error at {stage.value}: {cause}")
