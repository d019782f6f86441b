"""Generation request model."""

from pydantic import BaseModel, Field

from frameops.models.frames import DetailLevel, ExtractionConfig


class GenerationRequest(BaseModel):
    """Caller options for one SOP generation."""

    title: str | None = Field(default=None, description="Falls back to the source title")
    additional_instructions: str = Field(default="", max_length=5000)
    detail_level: DetailLevel = DetailLevel.NORMAL
    extraction: ExtractionConfig | None = Field(
        default=None, description="Overrides the detail level preset"
    )
    transcribe: bool = True

    def extraction_config(self) -> ExtractionConfig:
        return self.extraction or ExtractionConfig.for_detail_level(self.detail_level)
