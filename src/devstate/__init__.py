"""devstate - host telemetry publisher with MQTT connection monitoring."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("devstate")
except PackageNotFoundError:
    __version__ = "0+local"
from devstate.agent import DeviceStateAgent
from devstate.config import AgentConfig, MailerSettings, MatrixSettings, MqttSettings
from devstate.connection import ConnectionStateMachine
from devstate.exceptions import (
    ConfigError,
    DevstateError,
    NotifierError,
    SamplerError,
    TransportError,
    TransportUnavailableError,
)
from devstate.models import ConnectionState, TelemetrySnapshot, TransportEvent
from devstate.sampler import TelemetrySampler
from devstate.scheduler import PublicationScheduler

__all__ = [
    "__version__",
    "AgentConfig",
    "ConfigError",
    "ConnectionState",
    "ConnectionStateMachine",
    "DeviceStateAgent",
    "DevstateError",
    "MailerSettings",
    "MatrixSettings",
    "MqttSettings",
    "NotifierError",
    "PublicationScheduler",
    "SamplerError",
    "TelemetrySampler",
    "TelemetrySnapshot",
    "TransportError",
    "TransportEvent",
    "TransportUnavailableError",
]
