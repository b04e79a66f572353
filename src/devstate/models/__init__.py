"""Data models for devstate."""

from devstate.models._base import DevstateModel
from devstate.models.connection import ConnectionState, TransportEvent
from devstate.models.snapshot import TelemetrySnapshot

__all__ = [
    "ConnectionState",
    "DevstateModel",
    "TelemetrySnapshot",
    "TransportEvent",
]
