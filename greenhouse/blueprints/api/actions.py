"""
Actions API
===========

Routes:
- POST /api/actions                        - Create and execute a manual action
- GET  /api/actions                        - List actions (paged, newest first)
- GET  /api/actions/<id>                   - Get one action
- GET  /api/actions/equipment/<id>         - Actions of one unit (paged)
- GET  /api/actions/conditions             - Environment parameters, read through the circuit breaker
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError

from greenhouse.blueprints.api._common import fail as _fail
from greenhouse.blueprints.api._common import get_container as _container
from greenhouse.blueprints.api._common import get_json as _json
from greenhouse.blueprints.api._common import invalid as _invalid
from greenhouse.blueprints.api._common import page_request as _page_request
from greenhouse.blueprints.api._common import success as _success
from greenhouse.schemas.requests import CreateActionRequest
from greenhouse.utils.http import safe_route

logger = logging.getLogger("actions_api")

actions_api = Blueprint("actions_api", __name__, url_prefix="/api/actions")


@actions_api.post("")
@safe_route("Failed to create action")
def create_action() -> Response:
    try:
        body = CreateActionRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    action = _container().action_service.create_action(body)
    return _success(action.to_dict(), 201)


@actions_api.get("")
@safe_route("Failed to list actions")
def list_actions() -> Response:
    return _success(_container().action_service.list_actions(_page_request()).to_dict())


@actions_api.get("/<int:action_id>")
@safe_route("Failed to get action")
def get_action(action_id: int) -> Response:
    return _success(_container().action_service.get(action_id).to_dict())


@actions_api.get("/equipment/<int:equipment_id>")
@safe_route("Failed to list actions for equipment")
def list_for_equipment(equipment_id: int) -> Response:
    page = _container().action_service.list_for_equipment(equipment_id, _page_request())
    return _success(page.to_dict())


@actions_api.get("/conditions")
@safe_route("Failed to read environment conditions")
def get_conditions() -> Response:
    """
    Current parameters from the environment service.

    Answers 503 with an empty parameter list while the environment service is
    unreachable or its circuit is open.
    """
    conditions = _container().environment_client.get_conditions()
    if conditions.degraded:
        return _fail(conditions.message, conditions.status_code, details=conditions.to_dict())
    return _success(conditions.to_dict())
