import pytest

from greenhouse.config import AppConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GREENHOUSE_ENV",
        "GREENHOUSE_PRODUCER_MAX_BLOCK_MS",
        "GREENHOUSE_ACTION_CLAIM_LEASE_SECONDS",
        "GREENHOUSE_SERVICE_ROLE",
        "GREENHOUSE_TRANSPORT",
        "GREENHOUSE_PRODUCER_ACKS",
        "GREENHOUSE_CONSUMER_CONCURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = AppConfig()
    assert config.alerts_topic == "greenhouse-alerts"
    assert config.measurement_topic == "measurement-stream"
    assert config.actions_topic == "equipment-actions"
    assert config.consumer_group_id == "control-service-group"
    assert config.consumer_concurrency == 3
    assert config.consumer_max_retries == 3
    assert config.consumer_retry_backoff_ms == 1000
    assert config.producer_acks == "all"
    assert config.producer_max_block_ms == 2000
    assert config.producer_delivery_timeout_ms == 120_000
    assert config.action_claim_lease_seconds == 300.0
    assert config.transport == "memory"
    assert config.runs_environment and config.runs_control


def test_role_from_environment(monkeypatch):
    monkeypatch.setenv("GREENHOUSE_SERVICE_ROLE", "CONTROL")
    config = AppConfig()
    assert config.service_role == "control"
    assert config.runs_control
    assert not config.runs_environment


def test_invalid_integer(monkeypatch):
    monkeypatch.setenv("GREENHOUSE_CONSUMER_CONCURRENCY", "three")
    with pytest.raises(ValueError, match="must be an integer"):
        AppConfig()


@pytest.mark.parametrize(
    "overrides",
    [
        {"producer_acks": "1"},
        {"producer_max_in_flight": 6},
        {"consumer_concurrency": 0},
        {"consumer_max_retries": -1},
        {"service_role": "billing"},
        {"transport": "rabbitmq"},
        {"producer_max_block_ms": -1},
        {"producer_delivery_timeout_ms": 1000},
        {"action_claim_lease_seconds": 0},
    ],
)
def test_rejected_settings(overrides):
    with pytest.raises(ValueError):
        AppConfig(**overrides)


def test_production_needs_no_secret(monkeypatch):
    monkeypatch.setenv("GREENHOUSE_ENV", "production")
    config = AppConfig()
    assert config.environment == "production"
    assert "SECRET_KEY" not in config.as_flask_config()


def test_send_blocking_from_environment(monkeypatch):
    monkeypatch.setenv("GREENHOUSE_PRODUCER_MAX_BLOCK_MS", "500")
    monkeypatch.setenv("GREENHOUSE_ACTION_CLAIM_LEASE_SECONDS", "60")
    config = AppConfig()
    assert config.producer_max_block_ms == 500
    assert config.action_claim_lease_seconds == 60.0
