"""Delivery gate: hands out the live delivery sequence once the consumer is ready."""

import asyncio
import logging
from collections.abc import AsyncIterator

from aio_pika.exceptions import AMQPError, ChannelInvalidStateError

from coyote.broker.channel_initializer import ChannelSession
from coyote.broker.state import wait_any
from coyote.broker.supervisor import ConnectionSupervisor
from coyote.errors import NotConnectedError
from coyote.models import Delivery

logger = logging.getLogger(__name__)

# a channel closing under the consumer surfaces as either of these
CONSUME_ERRORS = (AMQPError, ChannelInvalidStateError)


class DeliveryGate:
    def __init__(self, supervisor: ConnectionSupervisor, poll_interval: float = 1.0):
        self.supervisor = supervisor
        self.poll_interval = poll_interval

    async def wait_ready(self) -> ChannelSession:
        """
        Block until the supervisor reports readiness on a channel that is still open.

        Raises:
            NotConnectedError: If the supervisor stopped while waiting
        """
        while True:
            snapshot = await self.supervisor.snapshot()
            if snapshot.ready and not snapshot.session.closed.is_set():
                return snapshot.session
            if snapshot.stopped:
                raise NotConnectedError()
            await wait_any(self.supervisor.done, timeout=self.poll_interval)

    async def deliveries(self) -> AsyncIterator[Delivery]:
        """
        Yield deliveries from the current channel.

        Prefetch is limited to one message and messages are auto acknowledged.
        The sequence ends when the channel it was opened on closes, including a
        close while the consumer is being set up; ask for a new one afterwards.

        Raises:
            NotConnectedError: If the supervisor stopped before becoming ready
        """
        session = await self.wait_ready()
        try:
            await session.channel.set_qos(prefetch_count=1)
            async with session.queue.iterator(no_ack=True) as queue_iter:
                closed = asyncio.ensure_future(session.closed.wait())
                receive: asyncio.Future | None = None
                try:
                    while True:
                        receive = asyncio.ensure_future(queue_iter.__anext__())
                        done, _ = await asyncio.wait(
                            {receive, closed}, return_when=asyncio.FIRST_COMPLETED
                        )
                        if receive not in done:
                            break
                        try:
                            message = receive.result()
                        except StopAsyncIteration:
                            break
                        receive = None
                        yield Delivery.from_message(message)
                finally:
                    closed.cancel()
                    if receive is not None and not receive.done():
                        receive.cancel()
        except CONSUME_ERRORS as e:
            logger.warning(f"Delivery sequence interrupted: {e}")
