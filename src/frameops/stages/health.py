"""Reachability probe for the processing service cluster."""

import logging

import httpx

from frameops.config import Settings

logger = logging.getLogger(__name__)


class ServiceHealthProbe:
    """GET /health with a short fixed timeout."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client()

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.Client | None = None):
        return cls(settings.service_url, settings.health_timeout, http_client=http_client)

    def check(self) -> bool:
        try:
            response = self.http_client.get(f"{self.base_url}/health", timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Service cluster not reachable: {e}")
            return False
        if response.is_success:
            return True
        logger.debug(f"Service cluster health returned HTTP {response.status_code}")
        return False

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
