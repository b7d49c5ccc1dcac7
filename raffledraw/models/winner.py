from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE, new_id

if TYPE_CHECKING:
    from .raffle import Prize, Raffle
    from .user import User


class Winner(Base):
    """Append-only record of one successful draw.

    ``won_at`` doubles as the ticket-reset cutoff for the winning user: only
    participations joined strictly after their latest win keep counting.
    """

    __tablename__ = "winners"

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True, default=new_id)
    """UUID primary key."""

    raffle_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False
    )
    prize_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    tickets_at_win: Mapped[int] = mapped_column(Integer, nullable=False)
    """Accumulated weight the winner held when selected."""

    won_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="winners")
    prize: Mapped["Prize"] = relationship("Prize")
    user: Mapped["User"] = relationship(back_populates="wins")

    __table_args__ = (
        # One winner per prize; concurrent draws for the same prize collide here.
        UniqueConstraint("raffle_id", "prize_id", name="uq_winners_raffle_prize"),
        Index("ix_winners_raffle_id", "raffle_id"),
        Index("ix_winners_user_won_at", "user_id", "won_at"),
    )

    def __init__(
        self,
        *,
        raffle_id: str,
        prize_id: str,
        user_id: str,
        tickets_at_win: int,
        won_at: Optional[datetime] = None,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or new_id()
        self.raffle_id = raffle_id
        self.prize_id = prize_id
        self.user_id = user_id
        self.tickets_at_win = tickets_at_win
        if won_at is not None:
            self.won_at = won_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Winner(id={id}, raffle_id={raffle}, prize_id={prize}, user_id={user}, tickets_at_win={tickets})>".format(
            id=self.id,
            raffle=self.raffle_id,
            prize=self.prize_id,
            user=self.user_id,
            tickets=self.tickets_at_win,
        )
