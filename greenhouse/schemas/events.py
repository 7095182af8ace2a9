"""
Event log payloads
==================

JSON records exchanged between the environment and control services. The
``parameter_kind`` field stays a plain string on the wire so a consumer can
still read an event carrying a kind it does not know; it is parsed into
:class:`~greenhouse.enums.ParameterKind` at the decision step.
"""

from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from greenhouse.enums import ActionKind, ActionStatus, EquipmentCategory, Severity
from greenhouse.utils.time import iso_now


def _event_id() -> str:
    return str(uuid4())


class _EventBase(BaseModel):
    model_config = ConfigDict(use_enum_values=False, extra="ignore")

    schema_version: int = Field(default=1)
    event_id: str = Field(default_factory=_event_id)
    event_timestamp: str = Field(default_factory=iso_now)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class MeasurementEvent(_EventBase):
    """Every stored measurement, published to the measurement stream."""

    measurement_id: int
    parameter_id: int
    parameter_kind: str
    parameter_name: str | None = None
    value: float
    unit: str | None = None
    min_value: float
    max_value: float
    is_alert: bool
    measured_at: str


class AlertEvent(_EventBase):
    """A threshold violation. ``event_id`` is the de-duplication key."""

    measurement_id: int
    parameter_id: int
    parameter_kind: str
    value: float
    min_value: float
    max_value: float
    measured_at: str
    severity: Severity
    message: str


class EquipmentActionEvent(_EventBase):
    """Outcome of an action reaching a terminal state."""

    action_id: int
    equipment_id: int
    equipment_name: str
    equipment_category: EquipmentCategory
    action_kind: ActionKind
    status: ActionStatus
    target_value: float | None = None
    observed_value: float | None = None
    parameter_id: int | None = None
    executed_at: str | None = None
    result: str | None = None
    is_automatic: bool
