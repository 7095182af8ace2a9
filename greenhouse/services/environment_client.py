"""
Environment service client
==========================

Synchronous reads from the environment service, guarded by a
:class:`~greenhouse.reliability.circuit_breaker.CircuitBreaker`. When the
circuit is open, or the call fails, callers get an empty degraded answer
instead of an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from greenhouse.domain.exceptions import ExternalServiceError
from greenhouse.reliability.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = "environment service temporarily unavailable"
DEGRADED_STATUS = 503


@dataclass
class EnvironmentConditions:
    """Parameters read from the environment service (empty when degraded)."""

    parameters: list[dict[str, Any]] = field(default_factory=list)
    message: str | None = None
    degraded: bool = False
    status_code: int = 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameters": self.parameters,
            "message": self.message,
            "degraded": self.degraded,
        }


class EnvironmentClient:
    def __init__(
        self,
        base_url: str,
        breaker: CircuitBreaker,
        *,
        session: requests.Session | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.breaker = breaker
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"GET {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ExternalServiceError(f"GET {url} returned HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalServiceError(f"GET {url} returned a non-JSON body") from exc
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def _degraded(self, exc: BaseException) -> EnvironmentConditions:
        logger.warning("Environment service call degraded (%s): %s", self.breaker.state.value, exc)
        return EnvironmentConditions(message=DEGRADED_MESSAGE, degraded=True, status_code=DEGRADED_STATUS)

    def get_conditions(self) -> EnvironmentConditions:
        """Current parameters and thresholds from the environment service."""

        def _call() -> EnvironmentConditions:
            data = self._get("/api/parameters")
            if not isinstance(data, list):
                raise ExternalServiceError("Environment service returned an unexpected parameter payload")
            return EnvironmentConditions(parameters=data)

        return self.breaker.call(_call, self._degraded).value

    def close(self) -> None:
        self.session.close()
