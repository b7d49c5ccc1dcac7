"""Orchestrates a single "draw one winner for one prize" operation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .eligibility import EligibilityResolver
from .selection import (
    EligibleParticipant,
    RandomSource,
    generate_wheel_seed,
    select_weighted_winner,
)
from ..auth import Authorizer, Caller, require_admin
from ..db.utils import dt_iso
from ..errors import (
    DrawRejection,
    InvalidIdentifierError,
    NoEligibleParticipantsError,
    PersistenceError,
    PrizeAlreadyAwardedError,
    PrizeMismatchError,
    PrizeNotFoundError,
    RaffleError,
    RaffleNotFoundError,
    RaffleStateError,
)
from ..models import Prize, Raffle, RaffleStatus, Winner
from ..realtime.broadcaster import BroadcastResult, EventBroadcaster
from ..results import ActionResult

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Draft raffles have not opened yet and completed ones never reopen.
DRAWABLE_STATUSES = (RaffleStatus.ACTIVE.value, RaffleStatus.DRAWING.value)
RAFFLE_NOT_DRAWABLE = "Raffle is not open for drawing"


def validate_identifier(value: Optional[str], label: str) -> str:
    """Return ``value`` if it is a UUID string, else raise :class:`InvalidIdentifierError`."""
    if not isinstance(value, str) or not UUID_RE.match(value):
        raise InvalidIdentifierError(f"Invalid {label} ID")
    return value


class DrawStage(str, Enum):
    """Progress of one draw; recorded in logs when a draw fails."""

    REQUESTED = "requested"
    AUTHORIZED = "authorized"
    ELIGIBILITY_GATHERED = "eligibility_gathered"
    WINNER_SELECTED = "winner_selected"
    PERSISTED = "persisted"
    BROADCAST = "broadcast"
    COMPLETED = "completed"


@dataclass(frozen=True)
class DrawnWinner:
    """The persisted winner record, as returned to the caller."""

    id: str
    raffle_id: str
    prize_id: str
    user_id: str
    user_name: str
    tickets_at_win: int
    won_at: datetime

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "raffleId": self.raffle_id,
            "prizeId": self.prize_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "ticketsAtWin": self.tickets_at_win,
            "wonAt": dt_iso(self.won_at),
        }


@dataclass(frozen=True)
class DrawWinnerResult:
    """Outcome of a completed draw.

    Attributes
    ----------
    winner : DrawnWinner
        The persisted winner.
    seed : int
        Wheel animation seed that was broadcast to clients.
    prize_name : str
        Name of the prize just awarded.
    participant_count : int
        Size of the eligible pool the winner was drawn from.
    raffle_completed : bool
        ``True`` when this draw awarded the raffle's last prize.
    """

    winner: DrawnWinner
    seed: int
    prize_name: str
    participant_count: int
    raffle_completed: bool = False

    def to_json(self) -> dict:
        return {
            "winner": self.winner.to_json(),
            "seed": self.seed,
            "prizeName": self.prize_name,
            "participantCount": self.participant_count,
            "raffleCompleted": self.raffle_completed,
        }


@dataclass(frozen=True)
class _Persisted:
    winner_id: str
    awarded_count: int
    remaining: int


class DrawOrchestrator:
    """Coordinates authorization, eligibility, selection, persistence and broadcast.

    Each :meth:`draw` call opens its own session from ``session_factory`` and
    commits the winner before announcing it. Nothing about the "current draw"
    is kept on the orchestrator; storage is the source of truth.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        broadcaster: EventBroadcaster,
        *,
        authorizer: Optional[Authorizer] = None,
        random_source: Optional[RandomSource] = None,
        seed_generator: Optional[Callable[[], int]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create an orchestrator.

        Parameters
        ----------
        session_factory : sessionmaker
            Factory producing sessions bound to the raffle database.
        broadcaster : EventBroadcaster
            Publisher for the raffle-scoped live channel.
        authorizer : Optional[Authorizer], default: None
            Permission check; defaults to the ``ADMIN_EMAILS`` allowlist.
        random_source : Optional[RandomSource], default: None
            Source for the weighted pick. ``None`` uses a cryptographically
            strong source per draw.
        seed_generator : Optional[Callable[[], int]], default: None
            Produces the wheel animation seed.
        clock : Optional[Callable[[], datetime]], default: None
            Returns the award timestamp; defaults to ``datetime.now(timezone.utc)``.
        """

        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._authorizer = authorizer
        self._random_source = random_source
        self._seed_generator = seed_generator or generate_wheel_seed
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def draw(
        self, caller: Optional[Caller], raffle_id: str, prize_id: str
    ) -> ActionResult[DrawWinnerResult]:
        """Draw a winner for ``prize_id`` of ``raffle_id``.

        Returns
        -------
        ActionResult[DrawWinnerResult]
            ``data`` on success; otherwise ``error`` and ``code`` describing
            the rejection. This method never raises.

        Notes
        -----
        1. Authorize the caller (no reads happen before this).
        2. Validate identifiers, raffle, prize ownership and award status.
        3. Resolve the eligible pool; an empty pool is a distinct rejection.
        4. Broadcast ``DRAW_START`` and ``WHEEL_SEED``, then pick the winner.
        5. In one transaction: conditionally award the prize, insert the
           winner row and advance the raffle status.
        6. Broadcast ``WINNER_REVEALED`` (and ``RAFFLE_ENDED`` after the last
           prize). Broadcast failures are logged, never rolled back.
        """

        stage = DrawStage.REQUESTED
        try:
            require_admin(caller, self._authorizer, raffle_id)
            stage = DrawStage.AUTHORIZED
            validate_identifier(raffle_id, "raffle")
            validate_identifier(prize_id, "prize")

            with self._session_factory() as session:
                raffle, prize = self._load_targets(session, raffle_id, prize_id)
                prize_name = prize.name

                pool = EligibilityResolver(session).resolve(raffle_id)
                if not pool:
                    raise NoEligibleParticipantsError()
                stage = DrawStage.ELIGIBILITY_GATHERED

                seed = self._seed_generator()
                self._warn_on_failure(
                    "DRAW_START",
                    self._broadcaster.draw_started(raffle_id, prize_id, prize_name),
                )
                self._warn_on_failure(
                    "WHEEL_SEED", self._broadcaster.wheel_seed(raffle_id, prize_id, seed)
                )

                selected = select_weighted_winner(pool, self._random_source)
                if selected is None:
                    raise RaffleError("Failed to select winner")
                stage = DrawStage.WINNER_SELECTED

                won_at = self._clock()
                persisted = self._persist(session, raffle, prize_id, selected, won_at)
                stage = DrawStage.PERSISTED

            self._warn_on_failure(
                "WINNER_REVEALED",
                self._broadcaster.winner_revealed(
                    raffle_id,
                    prize_id,
                    selected.user_id,
                    selected.name,
                    selected.tickets,
                    prize_name,
                ),
            )
            raffle_completed = persisted.remaining == 0
            if raffle_completed:
                self._warn_on_failure(
                    "RAFFLE_ENDED",
                    self._broadcaster.raffle_ended(raffle_id, persisted.awarded_count),
                )
            stage = DrawStage.BROADCAST

            logger.info(
                f"Winner selected: {selected.name} for prize \"{prize_name}\" "
                f"with {selected.tickets} tickets (raffle {raffle_id})"
            )
            stage = DrawStage.COMPLETED
            return ActionResult.success(
                DrawWinnerResult(
                    winner=DrawnWinner(
                        id=persisted.winner_id,
                        raffle_id=raffle_id,
                        prize_id=prize_id,
                        user_id=selected.user_id,
                        user_name=selected.name,
                        tickets_at_win=selected.tickets,
                        won_at=won_at,
                    ),
                    seed=seed,
                    prize_name=prize_name,
                    participant_count=len(pool),
                    raffle_completed=raffle_completed,
                )
            )
        except RaffleError as exc:
            if exc.is_business_rule:
                logger.info(
                    f"Draw rejected for raffle {raffle_id}, prize {prize_id} "
                    f"at stage {stage.value}: {exc.message}"
                )
            else:
                logger.error(
                    f"Draw failed for raffle {raffle_id}, prize {prize_id} "
                    f"at stage {stage.value}: {exc.__cause__ or exc.message}"
                )
            return ActionResult.from_error(exc)
        except Exception as exc:
            logger.exception(
                f"Unexpected error drawing raffle {raffle_id}, prize {prize_id} "
                f"at stage {stage.value}: {exc}"
            )
            return ActionResult.failure(
                "Failed to draw winner", DrawRejection.PERSISTENCE_FAILURE
            )

    def _load_targets(
        self, session: Session, raffle_id: str, prize_id: str
    ) -> tuple[Raffle, Prize]:
        raffle = session.get(Raffle, raffle_id)
        if raffle is None:
            raise RaffleNotFoundError()
        prize = session.get(Prize, prize_id)
        if prize is None:
            raise PrizeNotFoundError()
        if prize.raffle_id != raffle_id:
            raise PrizeMismatchError()
        if prize.awarded_to is not None:
            raise PrizeAlreadyAwardedError()
        if raffle.status not in DRAWABLE_STATUSES:
            raise RaffleStateError(RAFFLE_NOT_DRAWABLE)
        return raffle, prize

    def _persist(
        self,
        session: Session,
        raffle: Raffle,
        prize_id: str,
        selected: EligibleParticipant,
        won_at: datetime,
    ) -> _Persisted:
        """Award the prize, record the winner and advance the raffle atomically.

        The prize update only matches while ``awarded_to`` is still NULL, so a
        concurrent draw that validated the same prize loses here even if it
        passed the earlier read. Any failure rolls back every write.
        """
        raffle_id = raffle.id
        try:
            awarded = session.execute(
                update(Prize)
                .where(Prize.id == prize_id, Prize.awarded_to.is_(None))
                .values(awarded_to=selected.user_id, awarded_at=won_at)
                .execution_options(synchronize_session=False)
            )
            if awarded.rowcount != 1:
                raise PrizeAlreadyAwardedError()

            record = Winner(
                raffle_id=raffle_id,
                prize_id=prize_id,
                user_id=selected.user_id,
                tickets_at_win=selected.tickets,
                won_at=won_at,
            )
            session.add(record)
            session.flush()
            winner_id = record.id

            remaining = session.scalar(
                select(func.count(Prize.id)).where(
                    Prize.raffle_id == raffle_id, Prize.awarded_to.is_(None)
                )
            )
            awarded_count = session.scalar(
                select(func.count(Prize.id)).where(
                    Prize.raffle_id == raffle_id, Prize.awarded_to.is_not(None)
                )
            )
            advanced = session.execute(
                update(Raffle)
                .where(Raffle.id == raffle_id, Raffle.status.in_(DRAWABLE_STATUSES))
                .values(
                    status=RaffleStatus.COMPLETED.value
                    if remaining == 0
                    else RaffleStatus.DRAWING.value
                )
                .execution_options(synchronize_session=False)
            )
            if advanced.rowcount != 1:
                raise RaffleStateError(RAFFLE_NOT_DRAWABLE)
            session.commit()
        except RaffleError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            if self._has_winner(session, raffle_id, prize_id):
                raise PrizeAlreadyAwardedError() from exc
            raise PersistenceError() from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError() from exc

        return _Persisted(
            winner_id=winner_id,
            awarded_count=int(awarded_count or 0),
            remaining=int(remaining or 0),
        )

    @staticmethod
    def _has_winner(session: Session, raffle_id: str, prize_id: str) -> bool:
        """Return ``True`` if another draw already recorded a winner for the prize.

        Distinguishes a lost race on ``uq_winners_raffle_prize`` from other
        integrity failures such as a foreign key to a deleted user.
        """
        try:
            return (
                session.scalar(
                    select(Winner.id).where(
                        Winner.raffle_id == raffle_id, Winner.prize_id == prize_id
                    )
                )
                is not None
            )
        except SQLAlchemyError as exc:
            logger.error(f"Could not re-read winner of prize {prize_id}: {exc}")
            return False

    @staticmethod
    def _warn_on_failure(event: str, result: BroadcastResult) -> None:
        if not result.success:
            logger.warning(f"Failed to broadcast {event}: {result.error}")


__all__ = [
    "DrawOrchestrator",
    "DrawStage",
    "DrawWinnerResult",
    "DrawnWinner",
    "UUID_RE",
    "validate_identifier",
]
