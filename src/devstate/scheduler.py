"""Telemetry publication: publish-now and the steady periodic publish."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

from devstate._constants import PUBLISH_INTERVAL_S, STATE_QOS, STATE_RETAIN
from devstate.models.snapshot import TelemetrySnapshot

_logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Structural transport interface used by the scheduler.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`MqttTransport`) concrete.
    """

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> bool:
        ...


class Sampler(Protocol):
    def sample(self) -> TelemetrySnapshot:
        ...


class PublicationScheduler:
    """Publishes a fresh snapshot on demand and on a fixed cadence.

    The periodic publish runs for the lifetime of the scheduler regardless of
    connection state; while the broker is unreachable each tick is a logged
    no-op in the transport.
    """

    def __init__(
        self,
        *,
        sampler: Sampler,
        publisher: Publisher,
        topic: str,
        interval: float = PUBLISH_INTERVAL_S,
    ) -> None:
        self._sampler = sampler
        self._publisher = publisher
        self._topic = topic
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self.publish_count = 0

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def task(self) -> asyncio.Task[None] | None:
        """The periodic publish task, once started."""
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def publish_now(self) -> bool:
        """Sample, serialize and publish one snapshot (QoS 2, retained)."""
        snapshot = self._sampler.sample()
        self.publish_count += 1
        return self._publisher.publish(
            self._topic,
            snapshot.to_payload(),
            qos=STATE_QOS,
            retain=STATE_RETAIN,
        )

    def start(self) -> None:
        """Start the periodic publish; the first tick follows one interval."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="devstate-publisher")
        _logger.debug("Periodic publish started interval=%.0fs topic=%s", self._interval, self._topic)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.publish_now()
