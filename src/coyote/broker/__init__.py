from coyote.broker.channel_initializer import ChannelInitializer, ChannelSession
from coyote.broker.delivery_gate import DeliveryGate
from coyote.broker.state import ConnectionState, ExponentialBackoff, LifecycleEvent
from coyote.broker.supervisor import ConnectionSupervisor, SupervisorSnapshot

__all__ = [
    "ChannelInitializer",
    "ChannelSession",
    "ConnectionState",
    "ConnectionSupervisor",
    "DeliveryGate",
    "ExponentialBackoff",
    "LifecycleEvent",
    "SupervisorSnapshot",
]
