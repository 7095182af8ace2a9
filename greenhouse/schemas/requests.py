"""
Request Schemas
===============

Pydantic models for API request validation.
"""

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from greenhouse.enums import ActionKind, EquipmentCategory, EquipmentState, ParameterKind


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls) or value is None:
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            upper = value.upper()
            if hasattr(enum_cls, upper):
                return getattr(enum_cls, upper)
    return value


# ============================================================================
# Parameter Schemas
# ============================================================================


class ParameterRequest(BaseModel):
    """Request model for creating or replacing a parameter"""

    kind: ParameterKind = Field(..., description="Measured quantity")
    name: Optional[str] = Field(default=None, max_length=100, description="Display name")
    min_value: float = Field(..., description="Lower bound of the acceptable band")
    max_value: float = Field(..., description="Upper bound of the acceptable band")
    unit: str = Field(default="", max_length=20, description="Unit label, e.g. °C")

    @field_validator("kind", mode="before")
    def _coerce_kind(cls, v):
        return _coerce_enum(ParameterKind, v)

    @field_validator("min_value", "max_value")
    def _finite_bound(cls, v):
        if not math.isfinite(v):
            raise ValueError("bounds must be finite numbers")
        return v


# ============================================================================
# Measurement Schemas
# ============================================================================


class MeasurementRequest(BaseModel):
    """Request model for ingesting a measurement"""

    parameter_id: int = Field(..., gt=0, description="Measured parameter")
    value: float = Field(..., description="Measured value")
    timestamp: Optional[datetime] = Field(default=None, description="Measurement time (defaults to now)")

    @field_validator("value")
    def _finite_value(cls, v):
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v


# ============================================================================
# Equipment Schemas
# ============================================================================


class CreateEquipmentRequest(BaseModel):
    """Request model for registering equipment"""

    name: str = Field(..., min_length=1, max_length=100)
    category: EquipmentCategory = Field(..., description="Equipment category")
    state: EquipmentState = Field(default=EquipmentState.ACTIVE)
    parameter_id: Optional[int] = Field(default=None, gt=0, description="Associated parameter")

    @field_validator("category", mode="before")
    def _coerce_category(cls, v):
        return _coerce_enum(EquipmentCategory, v)

    @field_validator("state", mode="before")
    def _coerce_state(cls, v):
        return _coerce_enum(EquipmentState, v)


class UpdateEquipmentRequest(BaseModel):
    """Request model for partial equipment updates"""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[EquipmentCategory] = None
    state: Optional[EquipmentState] = None
    parameter_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("category", mode="before")
    def _coerce_category(cls, v):
        return _coerce_enum(EquipmentCategory, v)

    @field_validator("state", mode="before")
    def _coerce_state(cls, v):
        return _coerce_enum(EquipmentState, v)


# ============================================================================
# Action Schemas
# ============================================================================


class CreateActionRequest(BaseModel):
    """Request model for a manual action"""

    equipment_id: int = Field(..., gt=0)
    kind: ActionKind = Field(..., description="activate, deactivate or adjust")
    target_value: Optional[float] = None
    observed_value: Optional[float] = None
    parameter_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("kind", mode="before")
    def _coerce_kind(cls, v):
        return _coerce_enum(ActionKind, v)
