"""Accumulated ticket weights derived from participation and win history."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import TicketLookupError
from ..models import Participant, Winner

logger = logging.getLogger(__name__)


class TicketAccumulator:
    """Computes each user's current weight with the "reset after win" rule.

    A user's weight is the sum of ``ticket_count`` over their participations
    (in any raffle) joined strictly after their most recent win (in any
    raffle), or over all participations if they never won. Nothing is ever
    zeroed in storage; the reset is a fold over two append-only tables.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def for_user(self, user_id: str) -> int:
        """Return the accumulated weight of a single user.

        Raises
        ------
        TicketLookupError
            If the history lookup fails. Callers must not treat this as
            zero tickets.
        """
        return self.for_users([user_id]).get(user_id, 0)

    def for_users(self, user_ids: Iterable[str]) -> dict[str, int]:
        """Return ``{user_id: weight}`` for every id in ``user_ids``.

        One grouped query is issued regardless of how many users are
        requested. Each participation is joined against its user's latest win
        and only rows joined strictly after it are summed, so the filtering
        and the sum both happen in SQL. Users without qualifying
        participations map to ``0``.

        Raises
        ------
        TicketLookupError
            If the lookup fails.
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        latest_win = (
            select(Winner.user_id, func.max(Winner.won_at).label("won_at"))
            .where(Winner.user_id.in_(ids))
            .group_by(Winner.user_id)
            .subquery()
        )
        try:
            sums = self._session.execute(
                select(Participant.user_id, func.sum(Participant.ticket_count))
                .outerjoin(latest_win, latest_win.c.user_id == Participant.user_id)
                .where(
                    Participant.user_id.in_(ids),
                    or_(
                        latest_win.c.won_at.is_(None),
                        Participant.joined_at > latest_win.c.won_at,
                    ),
                )
                .group_by(Participant.user_id)
            ).all()
        except SQLAlchemyError as exc:
            logger.error(f"Ticket history lookup failed for {len(ids)} users: {exc}")
            raise TicketLookupError() from exc

        totals = {user_id: 0 for user_id in ids}
        for user_id, tickets in sums:
            totals[user_id] = int(tickets or 0)
        return totals


__all__ = ["TicketAccumulator"]
