"""Database models for raffles and the prizes drawn in them."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE, new_id
from ..db.utils import ensure_utc

if TYPE_CHECKING:
    from .participant import Participant
    from .user import User
    from .winner import Winner


class RaffleStatus(str, Enum):
    """Lifecycle of a raffle: draft -> active -> drawing -> completed."""

    DRAFT = "draft"
    ACTIVE = "active"
    DRAWING = "drawing"
    COMPLETED = "completed"


class Raffle(Base):
    """A raffle run by an organizer at a meetup."""

    __tablename__ = "raffles"

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True, default=new_id)
    """UUID primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Display name shown to participants and on the projector."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RaffleStatus.DRAFT.value
    )
    """Lifecycle status; gates which operations are legal."""

    qr_code_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the join QR code stops accepting participants. ``None`` while draft."""

    created_by: Mapped[Optional[str]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    """Organizer who created the raffle."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    """Timestamp when the raffle was created."""

    prizes: Mapped[list["Prize"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
        order_by="Prize.sort_order",
    )
    """Prizes in draw order."""

    participants: Mapped[list["Participant"]] = relationship(
        back_populates="raffle", cascade="all, delete-orphan"
    )
    winners: Mapped[list["Winner"]] = relationship(
        back_populates="raffle", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'drawing', 'completed')",
            name="status_enum",
        ),
        Index("ix_raffles_status", "status"),
    )

    def __init__(
        self,
        *,
        name: str,
        status: str = RaffleStatus.DRAFT.value,
        qr_code_expires_at: Optional[datetime] = None,
        created_by: Optional[str] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        prizes: Optional[list["Prize"]] = None,
    ) -> None:
        self.id = id or new_id()
        self.name = name
        self.status = RaffleStatus(status).value
        self.qr_code_expires_at = qr_code_expires_at
        self.created_by = created_by
        if created_at is not None:
            self.created_at = created_at
        if prizes is not None:
            self.prizes = prizes

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Raffle(id={id}, name={name}, status={status})>".format(
            id=self.id, name=self.name, status=self.status
        )

    def is_qr_expired(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` once the join window has closed.

        A raffle without an expiration never expires.
        """
        if self.qr_code_expires_at is None:
            return False
        current = now or datetime.now(timezone.utc)
        return ensure_utc(current) >= ensure_utc(self.qr_code_expires_at)

    @classmethod
    def get_by_id(cls, session: Session, raffle_id: str) -> Optional["Raffle"]:
        """Return the raffle with ``raffle_id`` if it exists."""

        return session.get(cls, raffle_id)


class Prize(Base):
    """A prize belonging to exactly one raffle, awarded at most once."""

    __tablename__ = "prizes"

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True, default=new_id)
    """UUID primary key."""

    raffle_id: Mapped[str] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False
    )
    """Owning raffle."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Display name of the prize."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional free-form description."""

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Position in the draw sequence (ascending)."""

    awarded_to: Mapped[Optional[str]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    """Winner of the prize. Set exactly once by a successful draw."""

    awarded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the prize was awarded; set together with ``awarded_to``."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="prizes")
    winner_user: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[awarded_to]
    )

    __table_args__ = (Index("ix_prizes_raffle_sort_order", "raffle_id", "sort_order"),)

    def __init__(
        self,
        *,
        name: str,
        raffle: Optional["Raffle"] = None,
        raffle_id: Optional[str] = None,
        description: Optional[str] = None,
        sort_order: int = 0,
        awarded_to: Optional[str] = None,
        awarded_at: Optional[datetime] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.id = id or new_id()
        if raffle is not None:
            self.raffle = raffle
        if raffle_id is not None:
            self.raffle_id = raffle_id
        self.name = name
        self.description = description
        self.sort_order = sort_order
        self.awarded_to = awarded_to
        self.awarded_at = awarded_at
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Prize(id={id}, raffle_id={raffle_id}, name={name}, awarded_to={awarded_to})>".format(
            id=self.id,
            raffle_id=self.raffle_id,
            name=self.name,
            awarded_to=self.awarded_to,
        )

    @property
    def is_awarded(self) -> bool:
        return self.awarded_to is not None

    @classmethod
    def for_raffle(cls, session: Session, raffle_id: str) -> list["Prize"]:
        """Return the prizes of ``raffle_id`` in draw order."""

        stmt = (
            select(cls)
            .where(cls.raffle_id == raffle_id)
            .order_by(cls.sort_order.asc(), cls.created_at.asc(), cls.id.asc())
        )
        return list(session.scalars(stmt).all())


__all__ = ["Raffle", "RaffleStatus", "Prize"]
