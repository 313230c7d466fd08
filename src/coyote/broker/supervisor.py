"""
Connection Supervisor

Owns the broker connection for the whole life of the process:

- an outer loop dials the broker, retrying with capped exponential backoff
  until it succeeds, is cancelled, or the broker denies access;
- an inner loop (re)initializes the channel on the live connection with its
  own backoff, and returns to the outer loop only when the connection closes.

Readiness together with the active connection and channel handles is shared
with the delivery side through ``snapshot()``. The lock guarding it is never
held across a network call.
"""

import asyncio
import logging
import ssl
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import aio_pika
from aio_pika.abc import AbstractConnection
from aio_pika.exceptions import AuthenticationError, ProbableAuthenticationError

from coyote.broker.channel_initializer import ChannelInitializer, ChannelSession
from coyote.broker.state import (
    ConnectionState,
    ExponentialBackoff,
    LifecycleEvent,
    check_transition,
    wait_any,
)
from coyote.errors import (
    BrokerConnectionError,
    ChannelSetupError,
    FatalConnectionError,
    RetryableConnectionError,
)
from coyote.models import Endpoint

logger = logging.getLogger(__name__)

ConnectFn = Callable[[Endpoint], Awaitable[AbstractConnection]]
EventListener = Callable[[LifecycleEvent], None]

ACCESS_REFUSED = 403


async def dial(
    endpoint: Endpoint,
    timeout: float = 5.0,
    heartbeat: int = 10,
    insecure: bool = False,
) -> AbstractConnection:
    """Open a plain (non robust) aio-pika connection to ``endpoint``."""
    kwargs = {}
    if endpoint.is_secure:
        ssl_context = ssl.create_default_context()
        if insecure:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        kwargs["ssl_context"] = ssl_context
    return await aio_pika.connect(endpoint.url, timeout=timeout, heartbeat=heartbeat, **kwargs)


def classify_connect_error(exc: BaseException) -> BrokerConnectionError:
    """Access denied is fatal, every other connect failure is worth retrying."""
    if isinstance(exc, (AuthenticationError, ProbableAuthenticationError)) or (
        getattr(exc, "code", None) == ACCESS_REFUSED
    ):
        error: BrokerConnectionError = FatalConnectionError(f"access denied: {exc}")
    else:
        error = RetryableConnectionError(f"failed to connect to RabbitMQ: {exc}")
    error.__cause__ = exc
    return error


@dataclass(frozen=True)
class SupervisorSnapshot:
    state: ConnectionState
    session: ChannelSession | None
    stopped: bool

    @property
    def ready(self) -> bool:
        return self.state is ConnectionState.READY and self.session is not None


class ConnectionSupervisor:
    """
    Drives the connection state machine.

    Usage::

        supervisor = ConnectionSupervisor(endpoint, initializer)
        supervisor.start()
        ...
        await supervisor.close()
    """

    def __init__(
        self,
        endpoint: Endpoint,
        initializer: ChannelInitializer,
        connect: ConnectFn | None = None,
        reconnect_backoff: ExponentialBackoff | None = None,
        reinit_backoff: ExponentialBackoff | None = None,
        on_event: EventListener | None = None,
    ):
        self.endpoint = endpoint
        self.initializer = initializer
        self._connect = connect or dial
        self.reconnect_backoff = reconnect_backoff or ExponentialBackoff()
        self.reinit_backoff = reinit_backoff or ExponentialBackoff()
        self.on_event = on_event

        self.done = asyncio.Event()
        self.fatal_error: FatalConnectionError | None = None

        self._lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._connection: AbstractConnection | None = None
        self._session: ChannelSession | None = None
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def snapshot(self) -> SupervisorSnapshot:
        async with self._lock:
            return SupervisorSnapshot(
                state=self._state,
                session=self._session,
                stopped=self.done.is_set(),
            )

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="coyote-supervisor")
        return self._task

    async def wait(self) -> None:
        """
        Wait for the supervisor to stop.

        Raises:
            FatalConnectionError: If the broker denied access
        """
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._task.cancelled() and self._task.exception() is not None:
                raise self._task.exception()
        if self.fatal_error is not None:
            raise self.fatal_error

    async def close(self) -> None:
        """Cancel both loops and release the connection and channel."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        await asyncio.wait({self._task})

    async def run(self) -> None:
        logger.info(f"Connecting to {self.endpoint}")
        try:
            while True:
                await self._transition(ConnectionState.CONNECTING, "attempting to connect")
                try:
                    connection = await self._connect(self.endpoint)
                except Exception as e:
                    error = classify_connect_error(e)
                    if error.fatal:
                        self.fatal_error = error
                        await self._transition(ConnectionState.FATAL_STOP, error.message)
                        logger.error(f"Fatal error connecting to RabbitMQ: {error.message}")
                        return
                    await self._transition(ConnectionState.DISCONNECTED, error.message)
                    delay = self.reconnect_backoff.next_delay()
                    logger.warning(f"Failed to connect. Retrying in {delay:g}s...")
                    await asyncio.sleep(delay)
                    continue

                self.reconnect_backoff.reset()
                reason = "shutting down"
                try:
                    await self._transition(
                        ConnectionState.CONNECTED_NOT_READY, "connected", connection=connection
                    )
                    await self._serve(connection)
                    reason = "connection closed, reconnecting"
                finally:
                    await self._transition(ConnectionState.DISCONNECTED, reason)
                    await self._release(connection)
        finally:
            await self._stop()

    async def _serve(self, connection: AbstractConnection) -> None:
        conn_closed = self.initializer.watch_connection(connection)
        self.reinit_backoff.reset()
        while not conn_closed.is_set():
            try:
                session = await self.initializer.initialize(connection)
            except ChannelSetupError as e:
                delay = self.reinit_backoff.next_delay()
                logger.warning(f"Failed to initialize channel, retrying in {delay:g}s: {e.message}")
                if await wait_any(conn_closed, timeout=delay):
                    break
                continue

            self.reinit_backoff.reset()
            await self._transition(ConnectionState.READY, "channel ready", session=session)
            await wait_any(conn_closed, session.closed)
            if conn_closed.is_set():
                break
            await self._transition(ConnectionState.CONNECTED_NOT_READY, "channel closed, re-running init")

    async def _transition(
        self,
        new_state: ConnectionState,
        reason: str,
        connection: AbstractConnection | None = None,
        session: ChannelSession | None = None,
    ) -> None:
        async with self._lock:
            previous = self._state
            check_transition(previous, new_state)
            self._state = new_state
            if new_state is ConnectionState.CONNECTED_NOT_READY and connection is not None:
                self._connection = connection
            elif new_state in (ConnectionState.DISCONNECTED, ConnectionState.FATAL_STOP):
                self._connection = None
            self._session = session if new_state is ConnectionState.READY else None
        self._emit(LifecycleEvent(previous=previous, current=new_state, reason=reason))

    def _emit(self, event: LifecycleEvent) -> None:
        if event.current is ConnectionState.FATAL_STOP:
            logger.error(f"Connection {event.previous.value} -> {event.current.value}: {event.reason}")
        elif event.current is ConnectionState.DISCONNECTED and event.previous is ConnectionState.CONNECTING:
            logger.warning(f"Connection {event.previous.value} -> {event.current.value}: {event.reason}")
        else:
            logger.info(f"Connection {event.previous.value} -> {event.current.value}: {event.reason}")
        if self.on_event is not None:
            self.on_event(event)

    async def _release(self, connection: AbstractConnection) -> None:
        if connection.is_closed:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"Error while closing connection: {e}")

    async def _stop(self) -> None:
        async with self._lock:
            previous = self._state
            stopped_state = previous
            if previous not in (ConnectionState.DISCONNECTED, ConnectionState.FATAL_STOP):
                check_transition(previous, ConnectionState.DISCONNECTED)
                stopped_state = self._state = ConnectionState.DISCONNECTED
            self._connection = None
            self._session = None
        if stopped_state is not previous:
            self._emit(LifecycleEvent(previous=previous, current=stopped_state, reason="supervisor stopped"))
        self.done.set()
        logger.debug("Connection supervisor stopped")
