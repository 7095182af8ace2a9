"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.

Usage:
    from greenhouse.blueprints.api._common import (
        get_container, get_json, success, fail, invalid, page_request,
    )
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app, request
from pydantic import ValidationError as PydanticValidationError

from greenhouse.domain.exceptions import ValidationError
from greenhouse.utils.http import error_response, success_response
from greenhouse.utils.time import coerce_datetime
from infrastructure.database.pagination import PageRequest

logger = logging.getLogger("api._common")

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """Get JSON request body, or an empty dict if there is none."""
    return request.get_json(silent=True) or {}


def int_arg(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Query parameter '{name}' must be an integer") from None


def page_request() -> PageRequest:
    """Read ``page`` (zero-based) and ``size`` from the query string."""
    try:
        return PageRequest.of(int_arg("page"), int_arg("size"))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def datetime_arg(name: str, *, required: bool = False) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        if required:
            raise ValidationError(f"Query parameter '{name}' is required")
        return None
    parsed = coerce_datetime(raw)
    if parsed is None:
        raise ValidationError(f"Query parameter '{name}' must be an ISO-8601 datetime")
    return parsed


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """Standard success response: ``{"ok": true, "data": ..., "error": null}``."""
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """Standard error response: ``{"ok": false, "data": null, "error": {...}}``."""
    return error_response(message, status, details=details)


def invalid(ve: PydanticValidationError):
    """400 response listing the fields that failed request validation."""
    return fail("Invalid request", 400, details={"errors": ve.errors(include_url=False, include_context=False)})
