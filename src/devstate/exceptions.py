"""Custom exception hierarchy for devstate."""

from __future__ import annotations


class DevstateError(Exception):
    """Base exception for all devstate errors."""


class ConfigError(DevstateError):
    """Invalid or missing configuration."""


class TransportError(DevstateError):
    """Broker-level failure (connect refused, publish rejected)."""

    def __init__(
        self,
        message: str,
        *,
        reason_code: int | None = None,
        topic: str = "",
    ) -> None:
        self.reason_code = reason_code
        self.topic = topic
        super().__init__(message)


class TransportUnavailableError(TransportError):
    """Publish attempted while no broker connection exists.

    This is an expected condition: the publish is dropped and logged,
    never escalated.
    """


class NotifierError(DevstateError):
    """A notifier channel failed to deliver a message."""

    def __init__(self, message: str, *, channel: str = "") -> None:
        self.channel = channel
        super().__init__(message)


class SamplerError(DevstateError):
    """Telemetry sampling failed as a whole.

    Individual unsupported metrics resolve to ``None`` instead; this is
    only raised when the snapshot itself cannot be built.
    """
