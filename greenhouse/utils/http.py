"""JSON envelope helpers and the ``safe_route`` decorator shared by every blueprint."""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify
from pydantic import ValidationError as PydanticValidationError

from greenhouse.utils.time import iso_now

_log = logging.getLogger(__name__)

# Client-facing text for failures whose real cause stays in the server log
_GENERIC_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    404: "Resource not found",
    409: "Conflict",
    500: "An internal error occurred",
    502: "Upstream service error",
    503: "Service temporarily unavailable",
}


def safe_error(
    exc: BaseException,
    status: int = 500,
    *,
    context: str = "",
    details: dict | None = None,
) -> Response:
    """Log *exc* with its traceback and answer with the generic message for *status*."""
    _log.error("API error [%s] %s: %s", status, context, exc, exc_info=exc)
    message = _GENERIC_MESSAGES.get(status, _GENERIC_MESSAGES[500])
    return error_response(message, status, details=details)


def success_response(
    data: dict | list | None = None,
    status: int = 200,
    *,
    message: str | None = None,
) -> Response:
    body: dict[str, Any] = {"ok": True, "data": data, "error": None}
    if message is not None:
        body["message"] = message
    response = jsonify(body)
    response.status_code = status
    return response


def error_response(
    message: str,
    status: int = 500,
    *,
    details: dict | None = None,
) -> Response:
    error: dict[str, Any] = {"message": message, "status": status, "timestamp": iso_now()}
    body: dict[str, Any] = {"ok": False, "data": None, "error": error, "message": message}
    if details:
        error.update(details)
        body["details"] = details
    response = jsonify(body)
    response.status_code = status
    return response


def safe_route(
    error_message: str = "An internal error occurred",
    *,
    error_status: int = 500,
) -> Callable:
    """Map exceptions escaping a route handler onto the error envelope.

    ``GreenhouseError`` subclasses answer with their ``http_status``. Client
    errors (4xx) echo the exception text and its ``detail``; server errors
    only say whether a retry may help. A pydantic ``ValidationError`` that
    was not handled by the route becomes a 400 listing the bad fields.
    Anything else is logged and answered with *error_status*.
    """
    from greenhouse.domain.exceptions import GreenhouseError

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except GreenhouseError as exc:
                status = exc.http_status
                if status >= 500:
                    return safe_error(exc, status, context=error_message, details={"retryable": exc.retryable})
                return error_response(str(exc) or error_message, status, details=exc.detail or None)
            except PydanticValidationError as exc:
                errors = exc.errors(include_url=False, include_context=False)
                return error_response(_GENERIC_MESSAGES[400], 400, details={"errors": errors})
            except Exception as exc:
                return safe_error(exc, error_status, context=error_message)

        return wrapper

    return decorator
