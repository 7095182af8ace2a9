"""
Equipment API
=============

Routes:
- POST /api/equipment                           - Register equipment
- GET  /api/equipment?category=&state=          - List equipment
- GET  /api/equipment/<id>                      - Get one unit
- PUT  /api/equipment/<id>                      - Update name, category, state or parameter
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, request
from pydantic import ValidationError

from greenhouse.blueprints.api._common import get_container as _container
from greenhouse.blueprints.api._common import get_json as _json
from greenhouse.blueprints.api._common import invalid as _invalid
from greenhouse.blueprints.api._common import success as _success
from greenhouse.domain.exceptions import ValidationError as InvalidArgument
from greenhouse.enums import EquipmentCategory, EquipmentState
from greenhouse.schemas.requests import CreateEquipmentRequest, UpdateEquipmentRequest
from greenhouse.utils.http import safe_route

logger = logging.getLogger("equipment_api")

equipment_api = Blueprint("equipment_api", __name__, url_prefix="/api/equipment")


def _enum_arg(name: str, enum_cls):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        raise InvalidArgument(f"Unknown {name} '{raw}'") from None


@equipment_api.post("")
@safe_route("Failed to create equipment")
def create_equipment() -> Response:
    try:
        body = CreateEquipmentRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    equipment = _container().equipment_service.create(body)
    return _success(equipment.to_dict(), 201)


@equipment_api.get("")
@safe_route("Failed to list equipment")
def list_equipment() -> Response:
    items = _container().equipment_service.list_equipment(
        category=_enum_arg("category", EquipmentCategory),
        state=_enum_arg("state", EquipmentState),
    )
    return _success([e.to_dict() for e in items])


@equipment_api.get("/<int:equipment_id>")
@safe_route("Failed to get equipment")
def get_equipment(equipment_id: int) -> Response:
    return _success(_container().equipment_service.get(equipment_id).to_dict())


@equipment_api.put("/<int:equipment_id>")
@safe_route("Failed to update equipment")
def update_equipment(equipment_id: int) -> Response:
    try:
        body = UpdateEquipmentRequest.model_validate(_json())
    except ValidationError as ve:
        return _invalid(ve)
    equipment = _container().equipment_service.update(equipment_id, body)
    return _success(equipment.to_dict())
