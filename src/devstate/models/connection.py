"""Connection state and raw transport event tags."""

from __future__ import annotations

from enum import StrEnum


class ConnectionState(StrEnum):
    """Debounced logical broker connection state.

    ``UNKNOWN`` is the only initial value. There is no terminal value::

        UNKNOWN -> {CONNECTED, UNCONNECTED} -> {DISCONNECTED <-> RECONNECTED}
    """

    UNKNOWN = "unknown"
    CONNECTED = "connected"
    UNCONNECTED = "unconnected"
    DISCONNECTED = "disconnected"
    RECONNECTED = "reconnected"


class TransportEvent(StrEnum):
    """Raw event tags emitted by the transport."""

    CONNECT = "connect"
    CLOSE = "close"
    ERROR = "error"
