from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE, new_id

if TYPE_CHECKING:
    from .raffle import Raffle
    from .user import User


class Participant(Base):
    """A user's join event for one raffle.

    Rows are append-only. Winning never edits or deletes them; the ticket
    reset is derived from :class:`~raffledraw.models.winner.Winner` timestamps.
    """

    def __init__(
        self,
        raffle_id: str,
        user_id: str,
        ticket_count: int = 1,
        joined_at: Optional[datetime] = None,
        id: Optional[str] = None,
    ):
        """Create a new participation record.

        Parameters
        ----------
        raffle_id : str
            Raffle that was joined.
        user_id : str
            Joining user's ID.
        ticket_count : int, default: 1
            Ticket weight earned by this join. Must be at least 1.
        joined_at : datetime, optional
            Explicit join timestamp; defaults to now (UTC).
        id : str, optional
            Explicit UUID; generated when omitted.
        """

        self.id = id or new_id()
        self.raffle_id = raffle_id
        self.user_id = user_id
        self.ticket_count = ticket_count
        if joined_at is not None:
            self.joined_at = joined_at

    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True, default=new_id)
    raffle_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="participants")
    user: Mapped["User"] = relationship(back_populates="participations")

    __table_args__ = (
        UniqueConstraint("raffle_id", "user_id", name="uq_participants_raffle_user"),
        CheckConstraint("ticket_count >= 1", name="ticket_count_positive"),
        Index("ix_participants_user_joined_at", "user_id", "joined_at"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Participant(id={self.id}, raffle_id={self.raffle_id}, "
            f"user_id={self.user_id}, ticket_count={self.ticket_count})>"
        )

    @classmethod
    def get_for_user(
        cls, session: Session, raffle_id: str, user_id: str
    ) -> Optional["Participant"]:
        """Return the participation of ``user_id`` in ``raffle_id`` if any."""

        return session.scalar(
            select(cls).where(cls.raffle_id == raffle_id, cls.user_id == user_id)
        )
