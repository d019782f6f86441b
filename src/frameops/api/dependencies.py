"""Dependency injection providers for FastAPI."""

from functools import lru_cache

from frameops.config import Settings, get_settings
from frameops.pipeline.manager import PipelineManager
from frameops.sources.provider import SourceProvider
from frameops.stages.health import ServiceHealthProbe
from frameops.storage.document_store import JsonDocumentStore


@lru_cache
def get_document_store() -> JsonDocumentStore:
    return JsonDocumentStore()


@lru_cache
def get_pipeline_manager() -> PipelineManager:
    return PipelineManager(sink=get_document_store())


@lru_cache
def get_source_provider() -> SourceProvider:
    return SourceProvider()


@lru_cache
def get_health_probe() -> ServiceHealthProbe:
    return ServiceHealthProbe.from_settings(get_settings())


def get_app_settings() -> Settings:
    return get_settings()
