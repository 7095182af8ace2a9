"""
Health API
==========

Routes:
- GET /api/health/ping       - Basic liveness check
- GET /api/health/messaging  - Publisher, consumer, dedupe cache and circuit breaker counters
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from greenhouse.blueprints.api._common import get_container as _container
from greenhouse.blueprints.api._common import success as _success
from greenhouse.utils.http import safe_route
from greenhouse.utils.time import iso_now

logger = logging.getLogger("health_api")

health_api = Blueprint("health_api", __name__, url_prefix="/api/health")


@health_api.get("/ping")
@safe_route("Failed to handle ping request")
def ping() -> Response:
    """
    Basic liveness check for monitoring tools.

    Returns:
        {"status": "ok", "service_role": "...", "timestamp": "..."}
    """
    return _success({"status": "ok", "service_role": _container().config.service_role, "timestamp": iso_now()})


@health_api.get("/messaging")
@safe_route("Failed to get messaging health")
def messaging_health() -> Response:
    return _success(_container().messaging_stats())
