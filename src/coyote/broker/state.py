"""
Connection lifecycle state machine.

The supervisor is the only writer of ConnectionState. Every change goes through
``check_transition`` against ``TRANSITIONS``; any edge not listed there is a
programming error.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from coyote.errors import InvalidStateTransition


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED_NOT_READY = "connected_not_ready"
    READY = "ready"
    FATAL_STOP = "fatal_stop"


TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.CONNECTED_NOT_READY,
            ConnectionState.DISCONNECTED,
            ConnectionState.FATAL_STOP,
        }
    ),
    ConnectionState.CONNECTED_NOT_READY: frozenset(
        {ConnectionState.READY, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.READY: frozenset(
        {ConnectionState.CONNECTED_NOT_READY, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.FATAL_STOP: frozenset(),
}


def check_transition(current: ConnectionState, new: ConnectionState) -> None:
    if new not in TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"invalid connection state transition: {current.value} -> {new.value}"
        )


class LifecycleEvent(BaseModel):
    """Emitted by the supervisor on every state transition."""

    previous: ConnectionState
    current: ConnectionState
    reason: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExponentialBackoff:
    """
    Doubling delay capped at ``maximum``.

    The k-th consecutive call to ``next_delay`` returns
    ``min(maximum, initial * 2 ** (k - 1))``.
    """

    def __init__(self, initial: float = 2.0, maximum: float = 60.0):
        if initial <= 0 or maximum < initial:
            raise ValueError(f"invalid backoff bounds: initial={initial}, maximum={maximum}")
        self.initial = initial
        self.maximum = maximum
        self.attempts = 0

    def next_delay(self) -> float:
        # cap the exponent, the delay saturates long before that anyway
        delay = min(self.maximum, self.initial * 2 ** min(self.attempts, 32))
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0


async def wait_any(*events: asyncio.Event, timeout: float | None = None) -> bool:
    """Wait until one of ``events`` is set. Returns False on timeout."""
    waiters = [asyncio.ensure_future(event.wait()) for event in events]
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
    return bool(done)
