"""
Equipment drivers
=================

A driver turns an :class:`~greenhouse.domain.entities.Action` into a command
for one physical unit. The action executor treats any exception raised by
``apply`` as a failed execution.

- :class:`SimulatedEquipmentDriver` accepts every command (default).
- :class:`MqttEquipmentDriver` publishes a JSON command to
  ``<prefix>/equipment/<id>/command``.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Iterable, Protocol

from greenhouse.domain.entities import Action, Equipment
from greenhouse.domain.exceptions import DeviceError
from greenhouse.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from greenhouse.utils.time import iso_now

logger = logging.getLogger(__name__)

SUCCESS_RESULT = "Action executed successfully"


class EquipmentDriver(Protocol):
    def apply(self, equipment: Equipment, action: Action) -> str:
        """Send the command; returns the result text or raises."""
        ...


class SimulatedEquipmentDriver:
    """Records commands in memory instead of reaching hardware."""

    def __init__(self, *, failing_equipment: Iterable[int] = ()) -> None:
        self.failing_equipment = set(failing_equipment)
        self.commands: list[tuple[int, str, float | None]] = []
        self._lock = threading.Lock()

    def apply(self, equipment: Equipment, action: Action) -> str:
        if equipment.id in self.failing_equipment:
            raise DeviceError(f"Equipment {equipment.name} did not respond")
        with self._lock:
            self.commands.append((equipment.id, action.kind.value, action.target_value))
        logger.info(
            "Simulated %s on %s #%s (target=%s)",
            action.kind.value,
            equipment.category.value,
            equipment.id,
            action.target_value,
        )
        return SUCCESS_RESULT


class MqttEquipmentDriver:
    """Publishes equipment commands over MQTT."""

    def __init__(self, client: MQTTClientWrapper, topic_prefix: str = "greenhouse", *, qos: int = 1) -> None:
        self.client = client
        self.topic_prefix = topic_prefix.rstrip("/")
        self.qos = qos

    def command_topic(self, equipment_id: int) -> str:
        return f"{self.topic_prefix}/equipment/{equipment_id}/command"

    def apply(self, equipment: Equipment, action: Action) -> str:
        topic = self.command_topic(equipment.id)
        payload = json.dumps(
            {
                "action_id": action.id,
                "equipment_id": equipment.id,
                "category": equipment.category.value,
                "command": action.kind.value,
                "target_value": action.target_value,
                "issued_at": iso_now(),
            }
        )
        if not self.client.publish(topic, payload, qos=self.qos):
            raise DeviceError(
                f"Command for equipment {equipment.id} was not accepted by the MQTT broker",
                detail={"topic": topic, "last_error": self.client.health_status.last_error},
            )
        return SUCCESS_RESULT

    def close(self) -> None:
        self.client.disconnect()
