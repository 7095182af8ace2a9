"""
Parameters API
==============

Routes:
- POST /api/parameters               - Register a parameter
- GET  /api/parameters               - List parameters
- GET  /api/parameters/<id>          - Get one parameter
- GET  /api/parameters/kind/<kind>   - Get the parameter of a kind
- PUT  /api/parameters/<id>          - Replace a parameter's band
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError

from greenhouse.blueprints.api._common import get_container as _container
from greenhouse.blueprints.api._common import get_json as _json
from greenhouse.blueprints.api._common import invalid as _invalid
from greenhouse.blueprints.api._common import success as _success
from greenhouse.schemas.requests import ParameterRequest
from greenhouse.utils.http import safe_route

logger = logging.getLogger("parameters_api")

parameters_api = Blueprint("parameters_api", __name__, url_prefix="/api/parameters")


@parameters_api.post("")
@safe_route("Failed to create parameter")
def create_parameter() -> Response:
    try:
        body = ParameterRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    parameter = _container().parameter_service.create(body)
    return _success(parameter.to_dict(), 201)


@parameters_api.get("")
@safe_route("Failed to list parameters")
def list_parameters() -> Response:
    parameters = _container().parameter_service.list_parameters()
    return _success([p.to_dict() for p in parameters])


@parameters_api.get("/<int:parameter_id>")
@safe_route("Failed to get parameter")
def get_parameter(parameter_id: int) -> Response:
    return _success(_container().parameter_service.get(parameter_id).to_dict())


@parameters_api.get("/kind/<string:kind>")
@safe_route("Failed to get parameter by kind")
def get_parameter_by_kind(kind: str) -> Response:
    return _success(_container().parameter_service.get_by_kind(kind).to_dict())


@parameters_api.put("/<int:parameter_id>")
@safe_route("Failed to update parameter")
def update_parameter(parameter_id: int) -> Response:
    try:
        body = ParameterRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    parameter = _container().parameter_service.update(parameter_id, body)
    return _success(parameter.to_dict())
