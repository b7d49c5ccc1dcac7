from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .id_type import ID_TYPE, new_id

if TYPE_CHECKING:
    from .participant import Participant
    from .winner import Winner


class User(Base):
    """A person who can join raffles (and, when allow-listed, run draws)."""

    def __init__(
        self,
        email: str,
        name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        """Create a new :class:`User` record.

        Parameters
        ----------
        email : str
            Login email address. Stored lower-cased.
        name : str, optional
            Display name shown on the projector when the user wins.
        avatar_url : str, optional
            Profile picture URL supplied by the identity provider.
        id : str, optional
            Explicit UUID; generated when omitted.
        created_at : datetime, optional
            Explicit creation timestamp.
        """

        self.id = id or new_id()
        self.email = email
        self.name = name
        self.avatar_url = avatar_url
        if created_at is not None:
            self.created_at = created_at

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(ID_TYPE, primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # relationships
    participations: Mapped[list["Participant"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    wins: Mapped[list["Winner"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        return value.strip().lower()

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<User(id={self.id}, email='{self.email}', name='{self.name}')>"

    @property
    def display_name(self) -> str:
        """Name shown to live viewers; falls back to ``"Unknown"``."""
        return self.name or "Unknown"

    @classmethod
    def get_by_email(cls, session: Session, email: str) -> Optional["User"]:
        """Retrieve a user by email address (case-insensitive)."""

        return session.scalar(select(cls).where(cls.email == email.strip().lower()))
