import logging

from coyote.broker.delivery_gate import DeliveryGate
from coyote.sink.console import DeliveryPrinter
from coyote.sink.store import EventStore

logger = logging.getLogger(__name__)


class MessageSink:
    """
    Drains delivery sequences into the console and the optional store.

    Runs until the supervisor stops, at which point the gate raises
    NotConnectedError. Each sequence that ends before that is an interrupted
    connection and gets an interruption marker in the store.
    """

    def __init__(self, gate: DeliveryGate, printer: DeliveryPrinter, store: EventStore | None = None):
        self.gate = gate
        self.printer = printer
        self.store = store

    async def run(self) -> None:
        while True:
            await self.gate.wait_ready()
            self.printer.waiting()

            sequence = self.gate.deliveries()
            try:
                async for delivery in sequence:
                    if self.store is not None:
                        self.store.save(delivery)
                    self.printer.show(delivery)
            finally:
                await sequence.aclose()

            logger.warning("💥 Connection was closed unexpectedly, reconnecting ...")
            if self.store is not None:
                self.store.mark_interrupted()
