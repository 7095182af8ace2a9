import json
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from greenhouse.domain.entities import Action, Equipment
from greenhouse.domain.exceptions import DeviceError
from greenhouse.enums import ActionKind, EquipmentCategory
from greenhouse.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from greenhouse.services.equipment_driver import SUCCESS_RESULT, MqttEquipmentDriver, SimulatedEquipmentDriver

FAN = Equipment(id=4, name="Roof fan", category=EquipmentCategory.VENTILATOR)
ACTION = Action(id=12, equipment_id=4, kind=ActionKind.ACTIVATE, target_value=30.0)


@pytest.fixture()
def paho_client():
    client = MagicMock()
    client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    with patch("greenhouse.hardware.mqtt.mqtt_broker_wrapper.create_mqtt_client", return_value=client):
        yield client


def test_simulated_driver_records_commands():
    driver = SimulatedEquipmentDriver()
    assert driver.apply(FAN, ACTION) == SUCCESS_RESULT
    assert driver.commands == [(4, "activate", 30.0)]


def test_simulated_driver_failure():
    driver = SimulatedEquipmentDriver(failing_equipment=[4])
    with pytest.raises(DeviceError):
        driver.apply(FAN, ACTION)


def test_mqtt_driver_publishes_command(paho_client):
    wrapper = MQTTClientWrapper("broker.local", 1883, "greenhouse-control")
    driver = MqttEquipmentDriver(wrapper, "greenhouse/")

    assert driver.apply(FAN, ACTION) == SUCCESS_RESULT

    paho_client.connect.assert_called_once_with("broker.local", 1883, 60)
    topic, payload = paho_client.publish.call_args.args
    assert topic == "greenhouse/equipment/4/command"
    body = json.loads(payload)
    assert body["command"] == "activate"
    assert body["action_id"] == 12
    assert body["target_value"] == 30.0
    assert paho_client.publish.call_args.kwargs["qos"] == 1
    assert wrapper.health_status.successful_publishes == 1


def test_mqtt_driver_raises_when_broker_refuses(paho_client):
    paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)
    driver = MqttEquipmentDriver(MQTTClientWrapper("broker.local", 1883))

    with pytest.raises(DeviceError):
        driver.apply(FAN, ACTION)


def test_mqtt_driver_raises_when_unreachable(paho_client):
    paho_client.connect.side_effect = OSError("connection refused")
    wrapper = MQTTClientWrapper("broker.local", 1883)

    with pytest.raises(DeviceError):
        MqttEquipmentDriver(wrapper).apply(FAN, ACTION)
    assert wrapper.health_status.failed_publishes == 1
    assert wrapper.health_status.last_error == "connection refused"


def test_close_disconnects(paho_client):
    wrapper = MQTTClientWrapper("broker.local", 1883)
    driver = MqttEquipmentDriver(wrapper)
    driver.apply(FAN, ACTION)
    driver.close()
    paho_client.disconnect.assert_called_once_with()
    paho_client.loop_stop.assert_called_once_with()
    assert not wrapper.connected
