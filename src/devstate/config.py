"""Agent configuration for devstate."""

from __future__ import annotations

import base64
import binascii
import dataclasses
import os
import socket
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from devstate._constants import DEFAULT_DATA_MOUNT, STATE_TOPIC_SUFFIX
from devstate.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def decode_secret(value: str | None, *, name: str) -> str | None:
    """Decode a base64-encoded secret from the environment.

    Secrets (broker password, SMTP password, Matrix access token) are
    stored base64-encoded so they survive shell quoting.
    """
    if value is None or not value.strip():
        return None
    try:
        return base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ConfigError(f"{name} is not valid base64") from exc


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection settings.

    A missing ``host`` disables the transport; every publish is then a
    logged no-op.
    """

    host: str | None = None
    protocol: str = "mqtt"
    port: int | None = None
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    topic_prefix: str = "devices"
    client_id: str | None = None
    keepalive: int = 60
    ca_file: Path | None = None
    cert_file: Path | None = None
    key_file: Path | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    @property
    def use_tls(self) -> bool:
        return self.protocol == "mqtts"

    @property
    def resolved_port(self) -> int:
        if self.port is not None:
            return self.port
        return 8883 if self.use_tls else 1883


@dataclasses.dataclass(frozen=True)
class MailerSettings:
    """SMTP notifier settings."""

    enabled: bool = False
    host: str | None = None
    port: int = 587
    secure: bool = False
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    sender: str | None = None
    recipients: tuple[str, ...] = ()
    timeout: float = 30.0


@dataclasses.dataclass(frozen=True)
class MatrixSettings:
    """Matrix chat notifier settings."""

    enabled: bool = False
    base_url: str | None = None
    user_id: str | None = None
    device_id: str | None = None
    access_token: str | None = dataclasses.field(default=None, repr=False)
    room_id: str | None = None
    timeout: float = 30.0


@dataclasses.dataclass(frozen=True)
class AgentConfig:
    """Agent configuration.

    Parameters
    ----------
    mqtt : MqttSettings
        Broker connection. Telemetry is published to
        ``{topic_prefix}/{hostname}/state``.
    mailer : MailerSettings
        SMTP notifier. Disabled by default.
    matrix : MatrixSettings
        Matrix chat notifier. Disabled by default.
    hostname : str
        Network name of this host, used in the topic and in notifications.
    data_mount : str
        Secondary mount reported as ``freeDataSpace``/``totalDataSpace``
        when it exists.
    log_level : str
        Root log level name.
    log_file : str or None
        Rotating log file path. ``None`` logs to the console only.
    """

    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)
    mailer: MailerSettings = dataclasses.field(default_factory=MailerSettings)
    matrix: MatrixSettings = dataclasses.field(default_factory=MatrixSettings)
    hostname: str = dataclasses.field(default_factory=socket.gethostname)
    data_mount: str = DEFAULT_DATA_MOUNT
    log_level: str = "INFO"
    log_file: str | None = "app.log"

    def __post_init__(self) -> None:
        if self.mailer.enabled:
            missing = [
                name
                for name, value in (
                    ("APP_MAILER_HOST", self.mailer.host),
                    ("APP_MAILER_SENDER", self.mailer.sender),
                    ("APP_MAILER_RECIPIENTS", self.mailer.recipients),
                )
                if not value
            ]
            if missing:
                raise ConfigError(f"Mailer enabled but missing: {', '.join(missing)}")
        if self.matrix.enabled:
            missing = [
                name
                for name, value in (
                    ("APP_MATRIX_BASE_URL", self.matrix.base_url),
                    ("APP_MATRIX_ACCESS_TOKEN", self.matrix.access_token),
                    ("APP_MATRIX_ROOM_ID", self.matrix.room_id),
                )
                if not value
            ]
            if missing:
                raise ConfigError(f"Matrix enabled but missing: {', '.join(missing)}")
        if self.mqtt.protocol not in {"mqtt", "mqtts"}:
            raise ConfigError(f"Unsupported MQTT protocol: {self.mqtt.protocol!r}")

    @property
    def state_topic(self) -> str:
        return f"{self.mqtt.topic_prefix}/{self.hostname}/{STATE_TOPIC_SUFFIX}"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> AgentConfig:
        """Create configuration from ``APP_*`` environment variables.

        Explicit keyword arguments override environment values. The
        nested ``mqtt``, ``mailer`` and ``matrix`` overrides may be given
        either as settings instances or as dicts of field overrides.

        Raises
        ------
        ConfigError
            If a value cannot be parsed or an enabled channel is missing
            a required field.
        """
        env = os.environ if env is None else env

        cert_dir = Path(env.get("APP_CERT_DIR", "."))

        def _cert(key: str) -> Path | None:
            name = env.get(key)
            return cert_dir / name if name else None

        hostname = overrides.get("hostname") or env.get("APP_HOSTNAME") or socket.gethostname()

        mqtt_kwargs: dict[str, Any] = {
            "host": env.get("APP_MQTT_HOST") or None,
            "protocol": env.get("APP_MQTT_PROTOCOL", "mqtt").strip().lower(),
            "port": _env_int(env, "APP_MQTT_PORT"),
            "username": env.get("APP_MQTT_USERNAME") or None,
            "password": decode_secret(env.get("APP_MQTT_PASSWORD"), name="APP_MQTT_PASSWORD"),
            "topic_prefix": env.get("APP_MQTT_TOPIC", "devices").rstrip("/"),
            "client_id": env.get("APP_MQTT_CLIENT_ID") or f"devstate-{hostname}",
            "ca_file": _cert("APP_MQTT_CA_FILENAME"),
            "cert_file": _cert("APP_MQTT_CERT_FILENAME"),
            "key_file": _cert("APP_MQTT_KEY_FILENAME"),
        }
        keepalive = _env_int(env, "APP_MQTT_KEEPALIVE")
        if keepalive is not None:
            mqtt_kwargs["keepalive"] = keepalive

        mailer_kwargs: dict[str, Any] = {"enabled": _env_bool(env.get("APP_MAILER_ENABLED"), False)}
        if mailer_kwargs["enabled"]:
            recipients = env.get("APP_MAILER_RECIPIENTS", "")
            mailer_kwargs.update(
                {
                    "host": env.get("APP_MAILER_HOST") or None,
                    "secure": _env_bool(env.get("APP_MAILER_USE_SECURE_CONNECTION"), False),
                    "username": env.get("APP_MAILER_USERNAME") or None,
                    "password": decode_secret(env.get("APP_MAILER_PASSWORD"), name="APP_MAILER_PASSWORD"),
                    "sender": env.get("APP_MAILER_SENDER") or None,
                    "recipients": tuple(r.strip() for r in recipients.split(",") if r.strip()),
                }
            )
            port = _env_int(env, "APP_MAILER_PORT")
            if port is not None:
                mailer_kwargs["port"] = port
            elif mailer_kwargs["secure"]:
                mailer_kwargs["port"] = 465

        matrix_kwargs: dict[str, Any] = {"enabled": _env_bool(env.get("APP_MATRIX_ENABLED"), False)}
        if matrix_kwargs["enabled"]:
            matrix_kwargs.update(
                {
                    "base_url": (env.get("APP_MATRIX_BASE_URL") or "").rstrip("/") or None,
                    "user_id": env.get("APP_MATRIX_USER_ID") or None,
                    "device_id": env.get("APP_MATRIX_DEVICE_ID") or None,
                    "access_token": decode_secret(
                        env.get("APP_MATRIX_ACCESS_TOKEN"),
                        name="APP_MATRIX_ACCESS_TOKEN",
                    ),
                    "room_id": env.get("APP_MATRIX_ROOM_ID") or None,
                }
            )

        config_kwargs: dict[str, Any] = {
            "mqtt": _merge_settings(MqttSettings, mqtt_kwargs, overrides.pop("mqtt", None)),
            "mailer": _merge_settings(MailerSettings, mailer_kwargs, overrides.pop("mailer", None)),
            "matrix": _merge_settings(MatrixSettings, matrix_kwargs, overrides.pop("matrix", None)),
            "hostname": hostname,
            "data_mount": env.get("APP_DATA_MOUNT", DEFAULT_DATA_MOUNT),
            "log_level": env.get("APP_LOG_LEVEL", "INFO").upper(),
            "log_file": env.get("APP_LOG_FILE", "app.log") or None,
        }
        config_kwargs.update(overrides)

        return cls(**config_kwargs)


def _merge_settings(settings_cls: type, env_kwargs: dict[str, Any], override: Any) -> Any:
    # A settings instance replaces the env values; a dict patches them.
    if isinstance(override, settings_cls):
        return override
    if isinstance(override, dict):
        env_kwargs = {**env_kwargs, **override}
    elif override is not None:
        raise ConfigError(f"Invalid override for {settings_cls.__name__}: {override!r}")
    return settings_cls(**env_kwargs)
