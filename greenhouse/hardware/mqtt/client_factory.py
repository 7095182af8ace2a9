"""
Build paho-mqtt clients that work on both 1.x and 2.x.

paho 2.x requires a callback API version; the command channel only publishes,
so the legacy (VERSION1) callback signature is requested where the enum
exists and omitted on 1.x.
"""
from __future__ import annotations

from typing import Any

import paho.mqtt.client as mqtt

_CALLBACK_VERSION_NAMES = ("VERSION1", "V1", "V311", "v311")


def _legacy_callback_version() -> Any:
    enum = getattr(mqtt, "CallbackAPIVersion", None)
    if enum is None:
        return None
    for name in _CALLBACK_VERSION_NAMES:
        if hasattr(enum, name):
            return getattr(enum, name)
    return None


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """Return an MQTT v3.1.1 client for *client_id*.

    Extra keyword arguments go to the ``mqtt.Client`` constructor.
    """
    client_kwargs: dict[str, Any] = {
        "client_id": client_id or "",
        "protocol": kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4)),
    }
    client_kwargs.update(kwargs)

    callback_version = _legacy_callback_version()
    if callback_version is not None:
        client_kwargs["callback_api_version"] = callback_version

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # paho 1.x has no callback_api_version argument.
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)
