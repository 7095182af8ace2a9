"""Centralized exception hierarchy for the greenhouse control pipeline.

All domain and service exceptions inherit from :class:`GreenhouseError` so
callers can catch a single base class, yet still match on specific subclasses
where narrower handling is appropriate.

Blueprint-level error handling (see ``greenhouse/utils/http.safe_route``) maps
these to HTTP status codes. The alert consumer uses :attr:`retryable` to decide
between a fixed-backoff retry and an immediate move to the dead-letter topic.

Hierarchy
---------
::

    GreenhouseError (base, 500)
    ├── ValidationError              (400, invalid argument)
    │   └── MalformedEventError      (400, undecodable event payload)
    ├── NotFoundError                (404)
    ├── ConflictError                (409, duplicate resource / state conflict)
    ├── ServiceError                 (500)
    │   ├── RepositoryError          (500, persistence)
    │   └── ExternalServiceError     (502, upstream HTTP)
    ├── EquipmentNotAvailableError   (503, no active unit for the category)
    ├── TransientPublishError        (503, broker unavailable / timeout)
    ├── CircuitOpenError             (503, short-circuited call)
    ├── DeviceError                  (503, equipment command failed)
    └── ConfigurationError           (500)
"""

from __future__ import annotations


class GreenhouseError(Exception):
    """Base exception for all greenhouse application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, returned to the HTTP
        client only for 4xx classes).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500
    retryable: bool = True

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(GreenhouseError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400
    retryable: bool = False


class MalformedEventError(ValidationError):
    """An event payload could not be decoded into its schema."""


class NotFoundError(GreenhouseError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


class ConflictError(GreenhouseError):
    """Operation conflicts with existing state (HTTP 409)."""

    http_status: int = 409
    retryable: bool = False


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(GreenhouseError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(ServiceError):
    """Upstream HTTP service failed or returned an error (HTTP 502)."""

    http_status: int = 502


class EquipmentNotAvailableError(GreenhouseError):
    """No active equipment unit of the required category (HTTP 503)."""

    http_status: int = 503


class TransientPublishError(GreenhouseError):
    """The event log could not accept a record right now (HTTP 503)."""

    http_status: int = 503


class CircuitOpenError(GreenhouseError):
    """The circuit breaker rejected the call without invoking upstream."""

    http_status: int = 503


class DeviceError(GreenhouseError):
    """Equipment did not accept a command (HTTP 503)."""

    http_status: int = 503


class ConfigurationError(GreenhouseError):
    """Missing or invalid configuration (HTTP 500)."""

    http_status: int = 500
    retryable: bool = False
