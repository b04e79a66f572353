"""Device state agent: wires transport, state machine, scheduler and notifiers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from devstate._constants import DISCONNECT_DEBOUNCE_S
from devstate._logging import log_uncaught
from devstate._mqtt import MqttTransport
from devstate._redact import redact_for_log
from devstate.config import AgentConfig
from devstate.connection import ConnectionStateMachine
from devstate.exceptions import DevstateError
from devstate.models.connection import ConnectionState
from devstate.notifiers import NotificationDispatcher, Notifier, build_notifiers
from devstate.sampler import TelemetrySampler
from devstate.scheduler import PublicationScheduler, Sampler

_logger = logging.getLogger(__name__)

TransportFactory = Callable[..., MqttTransport]


class DeviceStateAgent:
    """Long-running telemetry publisher with connection monitoring.

    Usage::

        async with DeviceStateAgent(config) as agent:
            await agent.run()

    ``run`` returns after :meth:`stop` and re-raises a fatal fault (for
    example a sampler error escaping a publish).
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        sampler: Sampler | None = None,
        notifiers: Sequence[Notifier] | None = None,
        transport_factory: TransportFactory = MqttTransport,
        debounce_seconds: float = DISCONNECT_DEBOUNCE_S,
    ) -> None:
        self._config = config
        self._sampler = sampler or TelemetrySampler(data_mount=config.data_mount)
        self._notifiers = notifiers
        self._transport_factory = transport_factory
        self._debounce_seconds = debounce_seconds
        self._loop: asyncio.AbstractEventLoop | None = None
        self._transport: MqttTransport | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._scheduler: PublicationScheduler | None = None
        self._machine: ConnectionStateMachine | None = None
        self._done: asyncio.Future[None] | None = None
        self._previous_exception_handler: Any = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DeviceStateAgent:
        _logger.info("=== DEVICE STATE INITIALIZATION START ===")
        _logger.debug("Configuration: %s", redact_for_log(self._config))

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._done = loop.create_future()
        self._previous_exception_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)

        notifiers = list(self._notifiers) if self._notifiers is not None else build_notifiers(self._config)
        self._dispatcher = NotificationDispatcher(notifiers, hostname=self._config.hostname, loop=loop)
        self._transport = self._transport_factory(
            self._config.mqtt,
            loop=loop,
            on_connect=self._on_transport_connect,
            on_close=self._on_transport_close,
            on_error=self._on_transport_error,
        )
        self._scheduler = PublicationScheduler(
            sampler=self._sampler,
            publisher=self._transport,
            topic=self._config.state_topic,
        )
        self._machine = ConnectionStateMachine(
            loop=loop,
            on_transition=self._dispatcher.dispatch,
            publish_now=self._scheduler.publish_now,
            debounce_seconds=self._debounce_seconds,
        )
        _logger.debug("Agent components created topic=%s", self._config.state_topic)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._machine is not None:
            self._machine.cancel()
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._transport is not None and self._loop is not None:
            await self._loop.run_in_executor(None, self._transport.stop)
        if self._dispatcher is not None:
            await self._dispatcher.aclose()
        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_exception_handler)
        self._loop = None
        _logger.info("Device state agent stopped.")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._require(self._machine).state

    @property
    def state_machine(self) -> ConnectionStateMachine:
        return self._require(self._machine)

    @property
    def scheduler(self) -> PublicationScheduler:
        return self._require(self._scheduler)

    async def run(self) -> None:
        """Connect, start the periodic publish and run until stopped."""
        loop = self._require(self._loop)
        transport = self._require(self._transport)
        scheduler = self._require(self._scheduler)
        done = self._require(self._done)

        _logger.debug("Connecting MQTT server...")
        await loop.run_in_executor(None, transport.start)
        scheduler.start()
        if scheduler.task is not None:
            scheduler.task.add_done_callback(self._on_scheduler_done)
        _logger.info("=== DEVICE STATE INITIALIZATION COMPLETED ===")

        await done

    def stop(self) -> None:
        """Request a clean shutdown of :meth:`run`."""
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(value: Any) -> Any:
        if value is None:
            raise DevstateError("Agent not initialized. Use 'async with DeviceStateAgent(...) as agent:'")
        return value

    def _on_transport_connect(self) -> None:
        self._require(self._machine).on_transport_connect()

    def _on_transport_close(self) -> None:
        self._require(self._machine).on_transport_close()

    def _on_transport_error(self, cause: BaseException) -> None:
        self._require(self._machine).on_transport_error(cause)

    def _fail(self, exc: BaseException) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_exception(exc)

    def _on_scheduler_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_uncaught(exc, "Periodic publish failed")
            self._fail(exc)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            _logger.error("Event loop error: %s", context.get("message"))
            return
        log_uncaught(exc, str(context.get("message") or "Uncaught exception"))
        self._fail(exc)
