from coyote.sink.console import DeliveryPrinter
from coyote.sink.runner import MessageSink
from coyote.sink.store import CONNECTION_INTERRUPTED, Event, EventStore

__all__ = ["CONNECTION_INTERRUPTED", "DeliveryPrinter", "Event", "EventStore", "MessageSink"]
