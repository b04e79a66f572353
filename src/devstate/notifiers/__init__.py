"""Operator notification channels."""

from __future__ import annotations

import logging

from devstate.config import AgentConfig
from devstate.notifiers.base import Notifier
from devstate.notifiers.dispatcher import NotificationDispatcher, compose_notification
from devstate.notifiers.mail import MailNotifier
from devstate.notifiers.matrix import MatrixNotifier

_logger = logging.getLogger(__name__)


def build_notifiers(config: AgentConfig) -> list[Notifier]:
    """Instantiate every channel enabled in *config*."""
    notifiers: list[Notifier] = []
    if config.mailer.enabled:
        notifiers.append(MailNotifier(config.mailer))
    else:
        _logger.warning("Mailer is disabled.")
    if config.matrix.enabled:
        notifiers.append(MatrixNotifier(config.matrix))
    else:
        _logger.warning("Matrix is disabled.")
    return notifiers


__all__ = [
    "MailNotifier",
    "MatrixNotifier",
    "NotificationDispatcher",
    "Notifier",
    "build_notifiers",
    "compose_notification",
]
