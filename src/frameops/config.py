"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """FrameOps configuration loaded from environment variables."""

    model_config = {"env_prefix": "FRAMEOPS_", "env_file": ".env", "extra": "ignore"}

    # Processing service cluster (frame extraction, transcription, matching)
    service_url: str = "http://localhost:8080"
    health_timeout: float = 5.0

    # Per-stage deadlines (seconds)
    extraction_timeout: float = 300.0
    transcription_timeout: float = 180.0
    synthesis_timeout: float = 240.0
    matching_timeout: float = 60.0

    # Step synthesis (OpenAI-compatible vision endpoint)
    openai_api_key: str = ""
    openai_base_url: str | None = None
    synthesis_model: str = "gpt-4o"
    synthesis_temperature: float = 0.2

    # Context assembly
    transcript_char_budget: int = 15000
    full_transcript_char_budget: int = 10000
    frame_transcript_window: float = 8.0

    # Alignment
    matcher_top_k: int = 3
    use_frame_matcher: bool = True

    # Run model
    log_capacity: int = 5
    check_health_before_run: bool = False
    run_retention_seconds: int = 3600

    # Upload constraints
    upload_max_size_mb: int = 500
    allowed_video_formats: list[str] = ["mp4", "mov", "avi", "webm", "mkv"]

    # Live capture constraints
    recording_max_chunks: int = 3600
    recording_max_size_mb: int = 500
    recording_idle_ttl_seconds: int = 1800

    # Persistence
    document_store_dir: Path = Path("/tmp/frameops/documents")

    # Celery
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
