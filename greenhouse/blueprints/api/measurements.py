"""
Measurements API
================

Routes:
- POST /api/measurements                       - Ingest a measurement
- GET  /api/measurements                       - List measurements (paged)
- GET  /api/measurements/<id>                  - Get one measurement
- GET  /api/measurements/parameter/<id>        - Measurements of a parameter (paged)
- GET  /api/measurements/range?start=&end=     - Measurements in a time range
- GET  /api/measurements/recent/<id>?limit=    - Latest measurements of a parameter
- GET  /api/measurements/alerts                - Measurements that raised an alert (paged)
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError

from greenhouse.blueprints.api._common import datetime_arg as _datetime_arg
from greenhouse.blueprints.api._common import get_container as _container
from greenhouse.blueprints.api._common import get_json as _json
from greenhouse.blueprints.api._common import int_arg as _int_arg
from greenhouse.blueprints.api._common import invalid as _invalid
from greenhouse.blueprints.api._common import page_request as _page_request
from greenhouse.blueprints.api._common import success as _success
from greenhouse.schemas.requests import MeasurementRequest
from greenhouse.utils.http import safe_route

logger = logging.getLogger("measurements_api")

measurements_api = Blueprint("measurements_api", __name__, url_prefix="/api/measurements")


def _service():
    return _container().measurement_service


@measurements_api.post("")
@safe_route("Failed to create measurement")
def create_measurement() -> Response:
    """
    Store a measurement and publish its events.

    Request body:
        {"parameter_id": 1, "value": 35.0, "timestamp": "2026-01-01T12:00:00Z"}

    Returns 201 with the stored measurement, its alert flag and the parameter's
    threshold snapshot.
    """
    try:
        body = MeasurementRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    recorded = _service().create_measurement(body)
    return _success(recorded.to_dict(), 201)


@measurements_api.get("")
@safe_route("Failed to list measurements")
def list_measurements() -> Response:
    return _success(_service().list_measurements(_page_request()).to_dict())


@measurements_api.get("/<int:measurement_id>")
@safe_route("Failed to get measurement")
def get_measurement(measurement_id: int) -> Response:
    return _success(_service().get_measurement(measurement_id))


@measurements_api.get("/parameter/<int:parameter_id>")
@safe_route("Failed to list measurements for parameter")
def list_for_parameter(parameter_id: int) -> Response:
    return _success(_service().list_for_parameter(parameter_id, _page_request()).to_dict())


@measurements_api.get("/range")
@safe_route("Failed to list measurements in range")
def list_in_range() -> Response:
    start = _datetime_arg("start", required=True)
    end = _datetime_arg("end", required=True)
    items = _service().list_in_range(start, end, parameter_id=_int_arg("parameter_id"))
    return _success(items)


@measurements_api.get("/recent/<int:parameter_id>")
@safe_route("Failed to get recent measurements")
def recent(parameter_id: int) -> Response:
    return _success(_service().recent(parameter_id, _int_arg("limit", 10)))


@measurements_api.get("/alerts")
@safe_route("Failed to list alert measurements")
def list_alerts() -> Response:
    page = _service().list_alerts(_page_request(), parameter_id=_int_arg("parameter_id"))
    return _success(page.to_dict())
