"""Weighted-winner draw subsystem."""

from .eligibility import EligibilityResolver
from .engine import DrawOrchestrator, DrawStage, DrawWinnerResult, DrawnWinner
from .selection import (
    EligibleParticipant,
    generate_wheel_seed,
    seeded_random,
    select_weighted_winner,
    system_random,
)
from .snapshot import PrizeState, RaffleDrawState, RaffleState, build_raffle_draw_state
from .tickets import TicketAccumulator

__all__ = [
    "DrawOrchestrator",
    "DrawStage",
    "DrawWinnerResult",
    "DrawnWinner",
    "EligibilityResolver",
    "EligibleParticipant",
    "PrizeState",
    "RaffleDrawState",
    "RaffleState",
    "TicketAccumulator",
    "build_raffle_draw_state",
    "generate_wheel_seed",
    "seeded_random",
    "select_weighted_winner",
    "system_random",
]
