"""
Enums Module
============

Enumeration types shared by the environment and control services.
"""

from greenhouse.enums.control import (
    ActionKind,
    ActionStatus,
    EquipmentCategory,
    EquipmentState,
    ParameterKind,
    ServiceRole,
    Severity,
    ViolationDirection,
)
from greenhouse.enums.messaging import CircuitState, PublishStatus, TransportKind

__all__ = [
    "ActionKind",
    "ActionStatus",
    "CircuitState",
    "EquipmentCategory",
    "EquipmentState",
    "ParameterKind",
    "PublishStatus",
    "ServiceRole",
    "Severity",
    "TransportKind",
    "ViolationDirection",
]
