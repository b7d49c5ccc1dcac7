"""Raffle draw events broadcast to admin consoles and projector screens."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union


class RaffleEventType(str, Enum):
    """Event names, in the order they are emitted during one draw.

    - ``DRAW_START``: an admin started drawing a prize.
    - ``WHEEL_SEED``: shared seed so every client spins the same animation.
    - ``WINNER_REVEALED``: the persisted winner.
    - ``RAFFLE_ENDED``: the last prize of the raffle was awarded.
    """

    DRAW_START = "DRAW_START"
    WHEEL_SEED = "WHEEL_SEED"
    WINNER_REVEALED = "WINNER_REVEALED"
    RAFFLE_ENDED = "RAFFLE_ENDED"


def broadcast_channel_name(raffle_id: str) -> str:
    """Return the raffle-scoped channel topic, ``raffle:{id}:draw``."""
    return f"raffle:{raffle_id}:draw"


@dataclass(frozen=True)
class DrawStartPayload:
    event_type: ClassVar[RaffleEventType] = RaffleEventType.DRAW_START

    raffle_id: str
    prize_id: str
    prize_name: str

    def to_json(self) -> dict[str, Any]:
        return {
            "raffleId": self.raffle_id,
            "prizeId": self.prize_id,
            "prizeName": self.prize_name,
        }


@dataclass(frozen=True)
class WheelSeedPayload:
    event_type: ClassVar[RaffleEventType] = RaffleEventType.WHEEL_SEED

    raffle_id: str
    prize_id: str
    seed: int

    def to_json(self) -> dict[str, Any]:
        return {"raffleId": self.raffle_id, "prizeId": self.prize_id, "seed": self.seed}


@dataclass(frozen=True)
class WinnerRevealedPayload:
    event_type: ClassVar[RaffleEventType] = RaffleEventType.WINNER_REVEALED

    raffle_id: str
    prize_id: str
    winner_id: str
    winner_name: str
    tickets_at_win: int
    prize_name: str

    def to_json(self) -> dict[str, Any]:
        return {
            "raffleId": self.raffle_id,
            "prizeId": self.prize_id,
            "winnerId": self.winner_id,
            "winnerName": self.winner_name,
            "ticketsAtWin": self.tickets_at_win,
            "prizeName": self.prize_name,
        }


@dataclass(frozen=True)
class RaffleEndedPayload:
    event_type: ClassVar[RaffleEventType] = RaffleEventType.RAFFLE_ENDED

    raffle_id: str
    total_prizes_awarded: int

    def to_json(self) -> dict[str, Any]:
        return {
            "raffleId": self.raffle_id,
            "totalPrizesAwarded": self.total_prizes_awarded,
        }


EventPayload = Union[
    DrawStartPayload, WheelSeedPayload, WinnerRevealedPayload, RaffleEndedPayload
]


@dataclass(frozen=True)
class BroadcastEvent:
    """Wire envelope: ``{type, payload, timestamp}``.

    ``timestamp`` is advisory (latency display only); ordering comes from
    publish order on the channel.
    """

    payload: EventPayload
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def type(self) -> RaffleEventType:
        return self.payload.event_type

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": self.payload.to_json(),
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
        }


__all__ = [
    "BroadcastEvent",
    "DrawStartPayload",
    "EventPayload",
    "RaffleEndedPayload",
    "RaffleEventType",
    "WheelSeedPayload",
    "WinnerRevealedPayload",
    "broadcast_channel_name",
]
