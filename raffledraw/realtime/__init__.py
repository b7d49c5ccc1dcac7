"""Live broadcast of draw events to admin consoles and projector screens."""

from .broadcaster import BroadcastResult, BroadcastTransport, EventBroadcaster
from .events import (
    BroadcastEvent,
    DrawStartPayload,
    RaffleEndedPayload,
    RaffleEventType,
    WheelSeedPayload,
    WinnerRevealedPayload,
    broadcast_channel_name,
)
from .api import RealtimeChannel, RealtimeClient
from .memory import InMemoryBus

__all__ = [
    "BroadcastEvent",
    "BroadcastResult",
    "BroadcastTransport",
    "DrawStartPayload",
    "EventBroadcaster",
    "InMemoryBus",
    "RaffleEndedPayload",
    "RaffleEventType",
    "RealtimeChannel",
    "RealtimeClient",
    "WheelSeedPayload",
    "WinnerRevealedPayload",
    "broadcast_channel_name",
]
