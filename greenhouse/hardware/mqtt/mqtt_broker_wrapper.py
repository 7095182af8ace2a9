"""
MQTT client wrapper used by the equipment command channel.

Connects lazily, publishes JSON commands and keeps publish counters for the
health endpoint.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

import paho.mqtt.client as mqtt

from greenhouse.hardware.mqtt.client_factory import create_mqtt_client
from greenhouse.utils.time import utc_now

_mqtt_logger = logging.getLogger("greenhouse.mqtt")


@dataclass
class HealthStatus:
    """Connection state and publish counters of the MQTT client."""

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0

    @property
    def success_rate(self) -> float:
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def record_error(self, error: Exception) -> None:
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self) -> dict:
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTClientWrapper:
    """Thin publisher around a paho client."""

    def __init__(self, broker: str, port: int, client_id: str = "", *, keepalive: int = 60) -> None:
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.client = create_mqtt_client(client_id=client_id)
        self.health_status = HealthStatus()
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self.health_status.is_connected

    def connect(self) -> bool:
        with self._lock:
            if self.health_status.is_connected:
                return True
            self.health_status.connection_attempts += 1
            try:
                self.client.connect(self.broker, self.port, self.keepalive)
                self.client.loop_start()
            except Exception as e:
                self.health_status.record_error(e)
                _mqtt_logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
                return False
            self.health_status.is_connected = True
            self.health_status.last_error = None
            _mqtt_logger.info("Connected to MQTT broker %s:%s", self.broker, self.port)
            return True

    def disconnect(self) -> None:
        with self._lock:
            if not self.health_status.is_connected:
                return
            try:
                self.client.disconnect()
                self.client.loop_stop()
            except Exception as e:
                self.health_status.record_error(e)
                _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
            self.health_status.is_connected = False
            _mqtt_logger.info("Disconnected from MQTT broker.")

    def publish(self, topic: str, payload: str, *, qos: int = 1) -> bool:
        """Publish *payload*; returns False if the broker did not accept it."""
        if not self.connect():
            self.health_status.failed_publishes += 1
            return False
        try:
            msg_info = self.client.publish(topic, payload, qos=qos)
        except Exception as e:
            self.health_status.failed_publishes += 1
            self.health_status.record_error(e)
            _mqtt_logger.error("Error publishing to %s: %s", topic, e)
            return False
        if msg_info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.health_status.failed_publishes += 1
            _mqtt_logger.error("Failed to publish to %s. MQTT result code: %s", topic, msg_info.rc)
            return False
        self.health_status.successful_publishes += 1
        _mqtt_logger.debug("Published to %s: %s", topic, payload)
        return True
