"""Eligible pool computation for a raffle draw."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .selection import EligibleParticipant
from .tickets import TicketAccumulator
from ..errors import TicketLookupError
from ..models import Participant, User, Winner

logger = logging.getLogger(__name__)


class EligibilityResolver:
    """Builds the weighted candidate pool for the next draw of a raffle."""

    def __init__(self, session: Session, accumulator: Optional[TicketAccumulator] = None) -> None:
        self._session = session
        self._accumulator = accumulator or TicketAccumulator(session)

    def resolve(self, raffle_id: str) -> list[EligibleParticipant]:
        """Return the eligible pool of ``raffle_id`` in join order.

        A participant is eligible when they joined the raffle, have not won
        any prize of this raffle yet, and hold a positive accumulated weight.
        An empty list means nobody is eligible; it is not an error.

        Raises
        ------
        TicketLookupError
            If the winner, participant or ticket lookups fail.
        """
        try:
            already_won = set(
                self._session.scalars(
                    select(Winner.user_id).where(Winner.raffle_id == raffle_id)
                ).all()
            )
            rows = self._session.execute(
                select(Participant.user_id, User)
                .join(User, User.id == Participant.user_id)
                .where(Participant.raffle_id == raffle_id)
                .order_by(Participant.joined_at.asc(), Participant.id.asc())
            ).all()
        except SQLAlchemyError as exc:
            logger.error(f"Failed to load participants for raffle {raffle_id}: {exc}")
            raise TicketLookupError() from exc

        candidates = [(user_id, user) for user_id, user in rows if user_id not in already_won]
        weights = self._accumulator.for_users(user_id for user_id, _ in candidates)

        pool: list[EligibleParticipant] = []
        for user_id, user in candidates:
            tickets = weights.get(user_id, 0)
            if tickets > 0:
                pool.append(
                    EligibleParticipant(user_id=user_id, name=user.display_name, tickets=tickets)
                )
        return pool


__all__ = ["EligibilityResolver"]
