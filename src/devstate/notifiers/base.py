"""Notifier channel interface."""

from __future__ import annotations

from typing import Protocol


class Notifier(Protocol):
    """A best-effort outbound text channel.

    ``send`` raises :class:`~devstate.exceptions.NotifierError` when the
    message could not be delivered; the dispatcher isolates that failure
    from the other channels.
    """

    name: str

    async def send(self, subject: str, body: str) -> None:
        ...

    async def aclose(self) -> None:
        ...
