"""Broker connection state machine.

Turns raw transport ``connect``/``close`` events into a debounced logical
:class:`ConnectionState`:

- repeated events of the same kind are ignored until an event of the
  opposite kind has been processed;
- ``connect`` is trusted immediately and cancels any pending disconnect;
- ``close`` only takes effect if no ``connect`` follows within the
  debounce delay, so sub-minute broker blips never raise an alarm.

All entry points must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from devstate._constants import DISCONNECT_DEBOUNCE_S
from devstate.models.connection import ConnectionState, TransportEvent

_logger = logging.getLogger(__name__)

_ON_CONNECT: dict[ConnectionState, ConnectionState] = {
    ConnectionState.UNKNOWN: ConnectionState.CONNECTED,
    ConnectionState.UNCONNECTED: ConnectionState.CONNECTED,
    ConnectionState.DISCONNECTED: ConnectionState.RECONNECTED,
}

_ON_CLOSE_TIMEOUT: dict[ConnectionState, ConnectionState] = {
    ConnectionState.UNKNOWN: ConnectionState.UNCONNECTED,
    ConnectionState.CONNECTED: ConnectionState.DISCONNECTED,
    ConnectionState.RECONNECTED: ConnectionState.DISCONNECTED,
}


class ConnectionStateMachine:
    """Debounced logical broker connection state.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop
        Loop used to arm the deferred disconnect (``call_later``).
    on_transition : callable
        Called with the new state after every real transition.
    publish_now : callable
        Called after every accepted ``connect`` event, following any
        transition notification.
    debounce_seconds : float
        Delay before a ``close`` becomes a state transition.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_transition: Callable[[ConnectionState], None],
        publish_now: Callable[[], object],
        debounce_seconds: float = DISCONNECT_DEBOUNCE_S,
    ) -> None:
        self._loop = loop
        self._on_transition = on_transition
        self._publish_now = publish_now
        self._debounce_seconds = debounce_seconds
        self._state = ConnectionState.UNKNOWN
        self._last_event: TransportEvent | None = None
        self._pending_disconnect: asyncio.TimerHandle | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_event(self) -> TransportEvent | None:
        """Last processed raw event tag (``connect``/``close``), if any."""
        return self._last_event

    @property
    def disconnect_pending(self) -> bool:
        return self._pending_disconnect is not None

    def on_transport_connect(self) -> None:
        if self._last_event is TransportEvent.CONNECT:
            _logger.debug("Duplicate MQTT connect event ignored")
            return
        self._last_event = TransportEvent.CONNECT
        self._cancel_pending_disconnect()

        target = _ON_CONNECT.get(self._state)
        if target is not None:
            self._transition(target)
        self._publish_now()

    def on_transport_close(self) -> None:
        if self._last_event is TransportEvent.CLOSE:
            _logger.debug("Duplicate MQTT close event ignored")
            return
        self._last_event = TransportEvent.CLOSE
        self._cancel_pending_disconnect()
        self._pending_disconnect = self._loop.call_later(self._debounce_seconds, self._on_disconnect_timeout)
        _logger.debug("MQTT close received, disconnect deferred by %.0fs", self._debounce_seconds)

    def on_transport_error(self, cause: BaseException | str) -> None:
        # Errors are reported only; a failed connection also emits close.
        _logger.error("MQTT client error: %s", cause)

    def cancel(self) -> None:
        """Drop any pending deferred disconnect (used on shutdown)."""
        self._cancel_pending_disconnect()

    def _on_disconnect_timeout(self) -> None:
        self._pending_disconnect = None
        target = _ON_CLOSE_TIMEOUT.get(self._state)
        if target is not None:
            self._transition(target)

    def _cancel_pending_disconnect(self) -> None:
        handle = self._pending_disconnect
        self._pending_disconnect = None
        if handle is not None:
            handle.cancel()

    def _transition(self, state: ConnectionState) -> None:
        previous = self._state
        self._state = state
        _logger.info("MQTT client %s.", state)
        _logger.debug("Connection state %s -> %s", previous, state)
        self._on_transition(state)
