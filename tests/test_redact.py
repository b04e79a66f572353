from __future__ import annotations

from pathlib import Path

from devstate._redact import redact_for_log
from devstate.config import AgentConfig, MatrixSettings, MqttSettings


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "host": "broker.lan",
        "password": "pw",
        "nested": {"access_token": "syt_abc", "Authorization": "Bearer x"},
        "secret": None,
    }

    redacted = redact_for_log(payload)
    assert redacted["host"] == "broker.lan"
    assert redacted["password"] == "<redacted>"
    assert redacted["nested"]["access_token"] == "<redacted>"
    assert redacted["nested"]["Authorization"] == "<redacted>"
    assert redacted["secret"] is None


def test_redact_for_log_walks_config_dataclasses() -> None:
    config = AgentConfig(
        hostname="pi",
        mqtt=MqttSettings(host="broker.lan", password="s3cret", ca_file=Path("/certs/ca.pem")),
        matrix=MatrixSettings(enabled=True, base_url="https://m", access_token="syt_abc", room_id="!r:m"),
    )

    redacted = redact_for_log(config)
    assert redacted["mqtt"]["password"] == "<redacted>"
    assert redacted["mqtt"]["ca_file"] == "/certs/ca.pem"
    assert redacted["matrix"]["access_token"] == "<redacted>"
    assert redacted["mailer"]["password"] is None
    assert "s3cret" not in repr(redacted)


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
