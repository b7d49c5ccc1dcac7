"""Public raffle operations.

Every function here is a boundary: it authorizes the caller, performs the
operation and returns an :class:`~raffledraw.results.ActionResult` instead of
raising. Functions that take a ``session`` only flush; committing is left to
the caller, as with any other unit of work. :func:`draw_winner` is the
exception because a winner must be committed before it is announced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .auth import Authorizer, Caller, require_admin, require_authenticated
from .db.utils import dt_iso, ensure_utc
from .draw.eligibility import EligibilityResolver
from .draw.engine import DrawOrchestrator, DrawWinnerResult, validate_identifier
from .draw.selection import EligibleParticipant, RandomSource
from .draw.snapshot import RaffleDrawState, build_raffle_draw_state
from .draw.tickets import TicketAccumulator
from .errors import (
    DrawRejection,
    InvalidInputError,
    JoinClosedError,
    RaffleError,
    RaffleNotFoundError,
    RaffleStateError,
)
from .models import Participant, Prize, Raffle, RaffleStatus, User, Winner
from .realtime.broadcaster import EventBroadcaster
from .results import ActionResult

logger = logging.getLogger(__name__)

MIN_QR_DURATION_MINUTES = 15
MAX_QR_DURATION_MINUTES = 24 * 60


def _rejected(operation: str, exc: RaffleError) -> ActionResult:
    if exc.is_business_rule:
        logger.info(f"{operation} rejected: {exc.message}")
    else:
        logger.error(f"{operation} failed: {exc.__cause__ or exc.message}")
    return ActionResult.from_error(exc)


def _failed(
    session: Session, operation: str, message: str, exc: SQLAlchemyError
) -> ActionResult:
    logger.error(f"{operation} failed: {exc}")
    session.rollback()
    return ActionResult.failure(message, DrawRejection.PERSISTENCE_FAILURE)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _qr_expiration(duration_minutes: int, now: Optional[datetime]) -> datetime:
    if not isinstance(duration_minutes, int) or not (
        MIN_QR_DURATION_MINUTES <= duration_minutes <= MAX_QR_DURATION_MINUTES
    ):
        raise InvalidInputError(
            f"Duration must be between {MIN_QR_DURATION_MINUTES} and "
            f"{MAX_QR_DURATION_MINUTES} minutes"
        )
    return _now(now) + timedelta(minutes=duration_minutes)


def _require_raffle(session: Session, raffle_id: str) -> Raffle:
    validate_identifier(raffle_id, "raffle")
    raffle = Raffle.get_by_id(session, raffle_id)
    if raffle is None:
        raise RaffleNotFoundError()
    return raffle


# ---------------------------------------------------------------------------
# Raffle lifecycle
# ---------------------------------------------------------------------------


def activate_raffle(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    duration_minutes: int,
    *,
    authorizer: Optional[Authorizer] = None,
    now: Optional[datetime] = None,
) -> ActionResult[Raffle]:
    """Open a draft raffle for joining.

    The transition is a conditional update on ``status = 'draft'``, so two
    organizers activating the same raffle cannot both succeed.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    caller : Optional[Caller]
        Identity of the requester; must be an admin.
    raffle_id : str
        Raffle to activate.
    duration_minutes : int
        How long the join QR code stays valid, from 15 minutes to 24 hours.
    authorizer : Optional[Authorizer], default: None
        Permission check; defaults to the ``ADMIN_EMAILS`` allowlist.
    now : Optional[datetime], default: None
        Activation time; defaults to the current UTC time.

    Returns
    -------
    ActionResult[Raffle]
        The activated raffle with its ``qr_code_expires_at`` set.
    """
    try:
        require_admin(caller, authorizer, raffle_id)
        validate_identifier(raffle_id, "raffle")
        expires_at = _qr_expiration(duration_minutes, now)

        activated = session.execute(
            update(Raffle)
            .where(Raffle.id == raffle_id, Raffle.status == RaffleStatus.DRAFT.value)
            .values(status=RaffleStatus.ACTIVE.value, qr_code_expires_at=expires_at)
            .execution_options(synchronize_session="fetch")
        )
        if activated.rowcount != 1:
            raise RaffleStateError("Raffle not found or already activated")
        session.flush()

        raffle = session.get(Raffle, raffle_id)
        logger.info(f"Raffle {raffle_id} activated until {dt_iso(expires_at)}")
        return ActionResult.success(raffle)
    except RaffleError as exc:
        return _rejected("activate_raffle", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "activate_raffle", "Failed to activate raffle", exc)


def regenerate_qr_code(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    duration_minutes: int,
    *,
    authorizer: Optional[Authorizer] = None,
    now: Optional[datetime] = None,
) -> ActionResult[Raffle]:
    """Restart the join window of an active raffle.

    Returns
    -------
    ActionResult[Raffle]
        The raffle with its new ``qr_code_expires_at``. Raffles that are not
        ``active`` are rejected with ``raffle_state``.
    """
    try:
        require_admin(caller, authorizer, raffle_id)
        raffle = _require_raffle(session, raffle_id)
        expires_at = _qr_expiration(duration_minutes, now)
        if raffle.status != RaffleStatus.ACTIVE.value:
            raise RaffleStateError("Can only regenerate QR code for active raffles")

        raffle.qr_code_expires_at = expires_at
        session.flush()
        logger.info(f"QR code for raffle {raffle_id} renewed until {dt_iso(expires_at)}")
        return ActionResult.success(raffle)
    except RaffleError as exc:
        return _rejected("regenerate_qr_code", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "regenerate_qr_code", "Failed to regenerate QR code", exc)


def update_raffle_status(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    status: str,
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[Raffle]:
    """Move a raffle to ``drawing`` or ``completed``.

    Other targets are rejected; activation goes through :func:`activate_raffle`.
    """
    try:
        require_admin(caller, authorizer, raffle_id)
        if status not in (RaffleStatus.DRAWING.value, RaffleStatus.COMPLETED.value):
            raise InvalidInputError("Invalid status. Must be 'drawing' or 'completed'")
        raffle = _require_raffle(session, raffle_id)

        raffle.status = status
        session.flush()
        logger.info(f"Raffle {raffle_id} status set to {status}")
        return ActionResult.success(raffle)
    except RaffleError as exc:
        return _rejected("update_raffle_status", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "update_raffle_status", "Failed to update raffle status", exc)


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JoinRaffleResult:
    """Outcome of :func:`join_raffle`.

    Attributes
    ----------
    participant : Participant
        The caller's participation in the raffle.
    is_new_join : bool
        ``False`` when the caller had already joined.
    """

    participant: Participant
    is_new_join: bool


def join_raffle(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    *,
    now: Optional[datetime] = None,
) -> ActionResult[JoinRaffleResult]:
    """Register the caller as a participant of an active raffle.

    Joining twice is not an error: the existing participation is returned.
    If a concurrent request inserts the same participation first, the unique
    constraint rejects ours and the winner of that race is returned instead.
    The race path rolls back the session.

    Returns
    -------
    ActionResult[JoinRaffleResult]
        The participation and whether it was created by this call.
    """
    try:
        caller = require_authenticated(caller)
        raffle = _require_raffle(session, raffle_id)
        if raffle.status != RaffleStatus.ACTIVE.value:
            raise JoinClosedError("This raffle is not accepting participants")
        joined_at = _now(now)
        if raffle.is_qr_expired(joined_at):
            raise JoinClosedError("QR code has expired")

        existing = Participant.get_for_user(session, raffle_id, caller.user_id)
        if existing is not None:
            return ActionResult.success(JoinRaffleResult(existing, is_new_join=False))

        participant = Participant(
            raffle_id=raffle_id,
            user_id=caller.user_id,
            ticket_count=1,
            joined_at=joined_at,
        )
        session.add(participant)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            existing = Participant.get_for_user(session, raffle_id, caller.user_id)
            if existing is None:
                raise
            return ActionResult.success(JoinRaffleResult(existing, is_new_join=False))

        logger.info(f"User {caller.user_id} joined raffle {raffle_id}")
        return ActionResult.success(JoinRaffleResult(participant, is_new_join=True))
    except RaffleError as exc:
        return _rejected("join_raffle", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "join_raffle", "Failed to join raffle", exc)


def get_participation(
    session: Session, caller: Optional[Caller], raffle_id: str
) -> ActionResult[Optional[Participant]]:
    """Return the caller's participation in ``raffle_id``, or ``None``."""
    try:
        caller = require_authenticated(caller)
        validate_identifier(raffle_id, "raffle")
        return ActionResult.success(
            Participant.get_for_user(session, raffle_id, caller.user_id)
        )
    except RaffleError as exc:
        return _rejected("get_participation", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "get_participation", "Failed to get participation", exc)


def get_accumulated_tickets(
    session: Session, caller: Optional[Caller]
) -> ActionResult[int]:
    """Return the caller's current ticket weight across all raffles."""
    try:
        caller = require_authenticated(caller)
        return ActionResult.success(TicketAccumulator(session).for_user(caller.user_id))
    except RaffleError as exc:
        return _rejected("get_accumulated_tickets", exc)


# ---------------------------------------------------------------------------
# Draw
# ---------------------------------------------------------------------------


def get_eligible_participants(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[list[EligibleParticipant]]:
    """Preview the pool the next draw of ``raffle_id`` would use."""
    try:
        require_admin(caller, authorizer, raffle_id)
        _require_raffle(session, raffle_id)
        return ActionResult.success(EligibilityResolver(session).resolve(raffle_id))
    except RaffleError as exc:
        return _rejected("get_eligible_participants", exc)
    except SQLAlchemyError as exc:
        return _failed(
            session, "get_eligible_participants", "Failed to get eligible participants", exc
        )


def draw_winner(
    session_factory: sessionmaker,
    caller: Optional[Caller],
    raffle_id: str,
    prize_id: str,
    *,
    broadcaster: EventBroadcaster,
    authorizer: Optional[Authorizer] = None,
    random_source: Optional[RandomSource] = None,
) -> ActionResult[DrawWinnerResult]:
    """Draw, persist and announce the winner of one prize.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for the session the draw commits in.
    caller : Optional[Caller]
        Identity of the requester; must be an admin.
    raffle_id : str
        Raffle being drawn.
    prize_id : str
        Prize to award; must belong to ``raffle_id`` and be unawarded.
    broadcaster : EventBroadcaster
        Publisher for the raffle's live channel.
    authorizer : Optional[Authorizer], default: None
        Permission check; defaults to the ``ADMIN_EMAILS`` allowlist.
    random_source : Optional[RandomSource], default: None
        Overrides the cryptographically strong default source.

    Returns
    -------
    ActionResult[DrawWinnerResult]
        See :meth:`~raffledraw.draw.engine.DrawOrchestrator.draw`.
    """
    orchestrator = DrawOrchestrator(
        session_factory,
        broadcaster,
        authorizer=authorizer,
        random_source=random_source,
    )
    return orchestrator.draw(caller, raffle_id, prize_id)


def get_raffle_draw_state(
    session: Session, raffle_id: str
) -> ActionResult[RaffleDrawState]:
    """Snapshot of a raffle's draw progress for reconnecting viewers.

    No authentication is required; the snapshot only holds what the live
    channel already announced.
    """
    try:
        validate_identifier(raffle_id, "raffle")
        return ActionResult.success(build_raffle_draw_state(session, raffle_id))
    except RaffleError as exc:
        return _rejected("get_raffle_draw_state", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "get_raffle_draw_state", "Failed to get raffle state", exc)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RaffleHistoryItem:
    id: str
    name: str
    status: str
    created_at: datetime
    participant_count: int
    prizes_awarded: int
    total_prizes: int

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "createdAt": dt_iso(self.created_at),
            "participantCount": self.participant_count,
            "prizesAwarded": self.prizes_awarded,
            "totalPrizes": self.total_prizes,
        }


@dataclass(frozen=True)
class WinnerDetail:
    id: str
    user_id: str
    user_name: Optional[str]
    user_avatar_url: Optional[str]
    prize_id: str
    prize_name: str
    tickets_at_win: int
    won_at: datetime

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userAvatarUrl": self.user_avatar_url,
            "prizeId": self.prize_id,
            "prizeName": self.prize_name,
            "ticketsAtWin": self.tickets_at_win,
            "wonAt": dt_iso(self.won_at),
        }


def get_raffle_history(
    session: Session,
    caller: Optional[Caller],
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[list[RaffleHistoryItem]]:
    """List every raffle, newest first, with participation and prize totals.

    Three queries are issued regardless of the number of raffles: the raffles
    themselves, participant counts and prize counts, each grouped in SQL.
    """
    try:
        require_admin(caller, authorizer)

        raffles = session.scalars(
            select(Raffle).order_by(Raffle.created_at.desc(), Raffle.id.asc())
        ).all()
        participant_counts = dict(
            session.execute(
                select(Participant.raffle_id, func.count(Participant.id)).group_by(
                    Participant.raffle_id
                )
            ).all()
        )
        prize_counts = {
            raffle_id: (int(total or 0), int(awarded or 0))
            for raffle_id, total, awarded in session.execute(
                select(
                    Prize.raffle_id,
                    func.count(Prize.id),
                    func.count(Prize.awarded_to),
                ).group_by(Prize.raffle_id)
            ).all()
        }

        history = []
        for raffle in raffles:
            total, awarded = prize_counts.get(raffle.id, (0, 0))
            history.append(
                RaffleHistoryItem(
                    id=raffle.id,
                    name=raffle.name,
                    status=raffle.status,
                    created_at=raffle.created_at,
                    participant_count=int(participant_counts.get(raffle.id, 0)),
                    prizes_awarded=awarded,
                    total_prizes=total,
                )
            )
        return ActionResult.success(history)
    except RaffleError as exc:
        return _rejected("get_raffle_history", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "get_raffle_history", "Failed to fetch raffle history", exc)


def get_raffle_winners(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[list[WinnerDetail]]:
    """Winners of ``raffle_id`` in the order they were drawn."""
    try:
        require_admin(caller, authorizer, raffle_id)
        validate_identifier(raffle_id, "raffle")

        rows = session.execute(
            select(Winner, User.name, User.avatar_url, Prize.name)
            .outerjoin(User, User.id == Winner.user_id)
            .outerjoin(Prize, Prize.id == Winner.prize_id)
            .where(Winner.raffle_id == raffle_id)
            .order_by(Winner.won_at.asc(), Winner.id.asc())
        ).all()

        return ActionResult.success(
            [
                WinnerDetail(
                    id=winner.id,
                    user_id=winner.user_id,
                    user_name=user_name,
                    user_avatar_url=avatar_url,
                    prize_id=winner.prize_id,
                    prize_name=prize_name or "Unknown Prize",
                    tickets_at_win=winner.tickets_at_win,
                    won_at=winner.won_at,
                )
                for winner, user_name, avatar_url, prize_name in rows
            ]
        )
    except RaffleError as exc:
        return _rejected("get_raffle_winners", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "get_raffle_winners", "Failed to fetch winners", exc)


# ---------------------------------------------------------------------------
# Participants and statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParticipantWithDetails:
    id: str
    user_id: str
    ticket_count: int
    joined_at: datetime
    user_name: Optional[str]
    user_avatar_url: Optional[str]

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "ticketCount": self.ticket_count,
            "joinedAt": dt_iso(self.joined_at),
            "userName": self.user_name,
            "userAvatarUrl": self.user_avatar_url,
        }


@dataclass(frozen=True)
class RaffleStatistics:
    participant_count: int
    total_tickets: int

    def to_json(self) -> dict:
        return {
            "participantCount": self.participant_count,
            "totalTickets": self.total_tickets,
        }


@dataclass(frozen=True)
class MultiWinnerStat:
    """A user who has won two or more prizes across all raffles."""

    user_id: str
    user_name: Optional[str]
    user_avatar_url: Optional[str]
    win_count: int
    last_win_at: datetime

    def to_json(self) -> dict:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "userAvatarUrl": self.user_avatar_url,
            "winCount": self.win_count,
            "lastWinAt": dt_iso(self.last_win_at),
        }


def get_participants_with_details(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[list[ParticipantWithDetails]]:
    """Participants of ``raffle_id`` with their user name and avatar, newest join first."""
    try:
        require_admin(caller, authorizer, raffle_id)
        validate_identifier(raffle_id, "raffle")

        rows = session.execute(
            select(Participant, User.name, User.avatar_url)
            .outerjoin(User, User.id == Participant.user_id)
            .where(Participant.raffle_id == raffle_id)
            .order_by(Participant.joined_at.desc(), Participant.id.asc())
        ).all()

        return ActionResult.success(
            [
                ParticipantWithDetails(
                    id=participant.id,
                    user_id=participant.user_id,
                    ticket_count=participant.ticket_count,
                    joined_at=participant.joined_at,
                    user_name=user_name,
                    user_avatar_url=avatar_url,
                )
                for participant, user_name, avatar_url in rows
            ]
        )
    except RaffleError as exc:
        return _rejected("get_participants_with_details", exc)
    except SQLAlchemyError as exc:
        return _failed(
            session, "get_participants_with_details", "Failed to fetch participants", exc
        )


def get_raffle_statistics(
    session: Session,
    caller: Optional[Caller],
    raffle_id: str,
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[RaffleStatistics]:
    """Participant count and stored ticket total for ``raffle_id``.

    An unknown raffle reports zero for both.
    """
    try:
        require_admin(caller, authorizer, raffle_id)
        validate_identifier(raffle_id, "raffle")

        participant_count, total_tickets = session.execute(
            select(
                func.count(Participant.id),
                func.coalesce(func.sum(Participant.ticket_count), 0),
            ).where(Participant.raffle_id == raffle_id)
        ).one()

        return ActionResult.success(
            RaffleStatistics(
                participant_count=int(participant_count or 0),
                total_tickets=int(total_tickets or 0),
            )
        )
    except RaffleError as exc:
        return _rejected("get_raffle_statistics", exc)
    except SQLAlchemyError as exc:
        return _failed(session, "get_raffle_statistics", "Failed to fetch statistics", exc)


def get_multi_winner_stats(
    session: Session,
    caller: Optional[Caller],
    *,
    authorizer: Optional[Authorizer] = None,
) -> ActionResult[list[MultiWinnerStat]]:
    """Users with at least two wins across all raffles, most wins first.

    Wins are counted and filtered in one grouped query; ties are ordered by
    the most recent win.
    """
    try:
        require_admin(caller, authorizer)

        win_count = func.count(Winner.id)
        last_win_at = func.max(Winner.won_at)
        rows = session.execute(
            select(Winner.user_id, User.name, User.avatar_url, win_count, last_win_at)
            .outerjoin(User, User.id == Winner.user_id)
            .group_by(Winner.user_id, User.name, User.avatar_url)
            .having(win_count >= 2)
            .order_by(win_count.desc(), last_win_at.desc(), Winner.user_id.asc())
        ).all()

        return ActionResult.success(
            [
                MultiWinnerStat(
                    user_id=user_id,
                    user_name=user_name,
                    user_avatar_url=avatar_url,
                    win_count=int(count),
                    last_win_at=ensure_utc(last_win),
                )
                for user_id, user_name, avatar_url, count, last_win in rows
            ]
        )
    except RaffleError as exc:
        return _rejected("get_multi_winner_stats", exc)
    except SQLAlchemyError as exc:
        return _failed(
            session, "get_multi_winner_stats", "Failed to fetch multi-winner stats", exc
        )


__all__ = [
    "JoinRaffleResult",
    "MultiWinnerStat",
    "ParticipantWithDetails",
    "RaffleHistoryItem",
    "RaffleStatistics",
    "WinnerDetail",
    "activate_raffle",
    "draw_winner",
    "get_accumulated_tickets",
    "get_eligible_participants",
    "get_multi_winner_stats",
    "get_participants_with_details",
    "get_participation",
    "get_raffle_draw_state",
    "get_raffle_history",
    "get_raffle_statistics",
    "get_raffle_winners",
    "join_raffle",
    "regenerate_qr_code",
    "update_raffle_status",
]
