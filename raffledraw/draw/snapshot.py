"""Reconnection snapshot: draw progress rebuilt purely from persisted state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ..db.utils import dt_iso
from ..errors import RaffleNotFoundError
from ..models import Prize, Raffle, RaffleStatus


@dataclass(frozen=True)
class RaffleState:
    id: str
    status: str
    name: str

    def to_json(self) -> dict:
        return {"id": self.id, "status": self.status, "name": self.name}


@dataclass(frozen=True)
class PrizeState:
    id: str
    name: str
    description: Optional[str]
    sort_order: int
    awarded_to: Optional[str]
    awarded_at: Optional[datetime]
    winner_name: Optional[str]

    @property
    def is_awarded(self) -> bool:
        return self.awarded_to is not None

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sortOrder": self.sort_order,
            "awardedTo": self.awarded_to,
            "awardedAt": dt_iso(self.awarded_at),
            "winnerName": self.winner_name,
        }


@dataclass(frozen=True)
class RaffleDrawState:
    """Point-in-time draw progress for clients that missed broadcasts.

    Attributes
    ----------
    raffle : RaffleState
        Raffle id, status and name.
    prizes : list[PrizeState]
        Every prize in draw order with award status and winner name.
    current_prize_index : int
        Index of the first unawarded prize, or ``-1`` when all are awarded.
    awarded_count : int
        Number of prizes with a winner.
    is_drawing : bool
        ``True`` while the raffle status is ``drawing``.
    timestamp : datetime
        When the snapshot was taken.
    """

    raffle: RaffleState
    prizes: list[PrizeState] = field(default_factory=list)
    current_prize_index: int = -1
    awarded_count: int = 0
    is_drawing: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> dict:
        return {
            "raffle": self.raffle.to_json(),
            "prizes": [prize.to_json() for prize in self.prizes],
            "currentPrizeIndex": self.current_prize_index,
            "awardedCount": self.awarded_count,
            "isDrawing": self.is_drawing,
            "timestamp": dt_iso(self.timestamp),
        }


def build_raffle_draw_state(
    session: Session,
    raffle_id: str,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RaffleDrawState:
    """Reconstruct the draw state of ``raffle_id`` from the database.

    Raises
    ------
    RaffleNotFoundError
        If the raffle does not exist.
    """

    raffle = session.get(Raffle, raffle_id)
    if raffle is None:
        raise RaffleNotFoundError()

    rows = session.scalars(
        select(Prize)
        .options(joinedload(Prize.winner_user))
        .where(Prize.raffle_id == raffle_id)
        .order_by(Prize.sort_order.asc(), Prize.created_at.asc(), Prize.id.asc())
    ).all()

    prizes = [
        PrizeState(
            id=prize.id,
            name=prize.name,
            description=prize.description,
            sort_order=prize.sort_order,
            awarded_to=prize.awarded_to,
            awarded_at=prize.awarded_at,
            winner_name=prize.winner_user.name if prize.winner_user else None,
        )
        for prize in rows
    ]
    current_prize_index = next(
        (index for index, prize in enumerate(prizes) if not prize.is_awarded), -1
    )

    return RaffleDrawState(
        raffle=RaffleState(id=raffle.id, status=raffle.status, name=raffle.name),
        prizes=prizes,
        current_prize_index=current_prize_index,
        awarded_count=sum(1 for prize in prizes if prize.is_awarded),
        is_drawing=raffle.status == RaffleStatus.DRAWING.value,
        timestamp=(clock or (lambda: datetime.now(timezone.utc)))(),
    )


__all__ = ["PrizeState", "RaffleDrawState", "RaffleState", "build_raffle_draw_state"]
