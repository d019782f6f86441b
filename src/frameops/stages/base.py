"""Base stage client.

Every stage client performs a single request/response round trip with an
explicit deadline and no internal retries. Retry policy (there is none
today) belongs to the orchestrator.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from frameops.config import Settings
from frameops.models.errors import StageError, StageErrorKind

logger = logging.getLogger(__name__)

UNAVAILABLE_STATUSES = {502, 503}
TIMEOUT_STATUSES = {504, 408}


class BaseStageClient(ABC):
    """Abstract base class for clients of the external processing services."""

    stage: str = "stage"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client()

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.Client | None = None):
        return cls(settings.service_url, cls.default_timeout(settings), http_client=http_client)

    @classmethod
    def default_timeout(cls, settings: Settings) -> float:
        return 60.0

    @abstractmethod
    def invoke(self, input: Any, config: Any = None, deadline: float | None = None) -> Any:
        """Run the stage and return its output or raise StageError."""
        ...

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _error(self, kind: StageErrorKind, message: str, **details: Any) -> StageError:
        return StageError(kind, self.stage, message, details=details or None)

    def _post(
        self,
        path: str,
        deadline: float | None = None,
        json: dict | None = None,
        data: dict | None = None,
        files: dict | None = None,
    ) -> dict:
        """POST to the service and return the decoded success envelope."""
        url = f"{self.base_url}{path}"
        timeout = deadline if deadline is not None else self.timeout

        try:
            response = self.http_client.post(
                url, json=json, data=data, files=files, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise self._error(StageErrorKind.TIMEOUT, f"no response within {timeout:.0f}s") from e
        except httpx.TransportError as e:
            raise self._error(StageErrorKind.SERVICE_UNAVAILABLE, str(e) or type(e).__name__) from e

        if response.status_code in TIMEOUT_STATUSES:
            raise self._error(StageErrorKind.TIMEOUT, f"HTTP {response.status_code}")
        if response.status_code in UNAVAILABLE_STATUSES:
            raise self._error(StageErrorKind.SERVICE_UNAVAILABLE, f"HTTP {response.status_code}")
        if not response.is_success:
            raise self._error(
                StageErrorKind.BAD_RESPONSE,
                f"HTTP {response.status_code}",
                body=response.text[:500],
            )

        try:
            body = response.json()
        except ValueError as e:
            raise self._error(StageErrorKind.BAD_RESPONSE, "response is not JSON") from e

        if not isinstance(body, dict):
            raise self._error(StageErrorKind.BAD_RESPONSE, "response is not a JSON object")
        if not body.get("success", False):
            raise self._error(
                StageErrorKind.BAD_RESPONSE, str(body.get("error") or "service reported failure")
            )

        logger.debug(f"{self.stage} POST {path}: HTTP {response.status_code}")
        return body
