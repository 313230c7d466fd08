"""
Channel initialization.

Opens a channel on an established connection, declares the interceptor queue
and binds it to every configured topic exchange. Close notifications of both
connection and channel are turned into asyncio events so the supervisor can
react to asynchronous termination without polling.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from aio_pika import ExchangeType
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractQueue

from coyote.bindings import Binding
from coyote.errors import ChannelSetupError

logger = logging.getLogger(__name__)


@dataclass
class ChannelSession:
    """A channel with its declared queue, valid until ``closed`` is set."""

    channel: AbstractChannel
    queue: AbstractQueue
    closed: asyncio.Event


def _close_signal(what: str) -> tuple[asyncio.Event, Any]:
    closed = asyncio.Event()

    def _on_close(*args: Any) -> None:
        # aio-pika passes (sender, exception)
        exc = args[1] if len(args) > 1 else None
        if exc is not None and not isinstance(exc, asyncio.CancelledError):
            logger.warning(f"{what} closed: {exc}")
        else:
            logger.debug(f"{what} closed")
        closed.set()

    return closed, _on_close


class ChannelInitializer:
    def __init__(
        self,
        bindings: list[Binding],
        queue_name: str,
        persistent: bool = False,
        passive: bool = False,
    ):
        if not bindings:
            raise ValueError("at least one binding is required")
        self.bindings = bindings
        self.queue_name = queue_name
        self.persistent = persistent
        self.passive = passive

    def watch_connection(self, connection: AbstractConnection) -> asyncio.Event:
        """Return an event that is set once ``connection`` closes."""
        closed, on_close = _close_signal("Connection")
        connection.close_callbacks.add(on_close)
        if connection.is_closed:
            closed.set()
        return closed

    async def initialize(self, connection: AbstractConnection) -> ChannelSession:
        """
        Open a channel, declare the queue and bind every exchange.

        A failing step aborts the whole initialization. Bindings made before
        the failure are left in place, a transient queue disappears with the
        connection anyway.

        Raises:
            ChannelSetupError: If any step fails
        """
        channel: AbstractChannel | None = None
        try:
            channel = await connection.channel(publisher_confirms=True)
            closed, on_close = _close_signal("Channel")
            channel.close_callbacks.add(on_close)

            queue = await channel.declare_queue(
                self.queue_name,
                durable=False,
                auto_delete=not self.persistent,
                exclusive=not self.persistent,
                passive=self.persistent and self.passive,
            )

            for binding in self.bindings:
                exchange = await channel.declare_exchange(
                    binding.exchange,
                    ExchangeType.TOPIC,
                    durable=True,
                    passive=True,
                )
                await queue.bind(exchange, routing_key=binding.routing_key)
                logger.info(
                    f"👂 Listening from exchange {binding.exchange} "
                    f"with routing key {binding.routing_key}"
                )
        except Exception as e:
            if channel is not None and not channel.is_closed:
                try:
                    await channel.close()
                except Exception as close_error:
                    logger.debug(f"Failed to close channel after setup failure: {close_error}")
            raise ChannelSetupError(f"failed to initialize channel: {e}") from e

        logger.info("Client init done")
        return ChannelSession(channel=channel, queue=queue, closed=closed)
