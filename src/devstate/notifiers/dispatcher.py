"""Fan-out of connection-state notifications to every enabled channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from devstate.models.connection import ConnectionState
from devstate.notifiers.base import Notifier

_logger = logging.getLogger(__name__)


def compose_notification(hostname: str, state: ConnectionState) -> tuple[str, str]:
    """Return ``(subject, body)`` describing *state*."""
    return f"Device {hostname} notification", f"MQTT broker {state}."


class NotificationDispatcher:
    """Sends each notification to every channel without waiting.

    Each channel send runs as its own task; one channel failing (or
    retrying) never delays or suppresses another.
    """

    def __init__(
        self,
        notifiers: Sequence[Notifier],
        *,
        hostname: str,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._notifiers = tuple(notifiers)
        self._hostname = hostname
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def notifiers(self) -> tuple[Notifier, ...]:
        return self._notifiers

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, state: ConnectionState) -> None:
        subject, body = compose_notification(self._hostname, state)
        if not self._notifiers:
            _logger.debug("No notifier enabled, no message sent.")
            return
        for notifier in self._notifiers:
            task = self._loop.create_task(self._deliver(notifier, subject, body))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight sends to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
        for notifier in self._notifiers:
            await notifier.aclose()

    async def _deliver(self, notifier: Notifier, subject: str, body: str) -> None:
        try:
            await notifier.send(subject, body)
        except Exception:
            _logger.error("Notifier %s failed to send %r", notifier.name, body, exc_info=True)
