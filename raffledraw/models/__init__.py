from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .raffle import Raffle, RaffleStatus, Prize  # noqa: F401
from .participant import Participant  # noqa: F401
from .winner import Winner  # noqa: F401

__all__ = [
    "Base",
    "User",
    "Raffle",
    "RaffleStatus",
    "Prize",
    "Participant",
    "Winner",
]
