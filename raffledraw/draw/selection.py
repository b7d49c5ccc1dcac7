"""Weighted random selection over an eligible pool."""

from __future__ import annotations

import random
import secrets
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, TypeVar

WHEEL_SEED_RANGE = 1_000_000


class RandomSource(Protocol):
    """Anything exposing ``randrange(n)``: ``random.Random``, ``secrets.SystemRandom``."""

    def randrange(self, stop: int) -> int: ...


@dataclass(frozen=True)
class EligibleParticipant:
    """One pool entry: a user and their accumulated ticket weight.

    Attributes
    ----------
    user_id : str
        Identity of the participant.
    name : str
        Display name revealed on the projector.
    tickets : int
        Accumulated weight; always positive inside an eligible pool.
    """

    user_id: str
    name: str
    tickets: int

    def to_json(self) -> dict:
        return {"userId": self.user_id, "name": self.name, "tickets": self.tickets}


E = TypeVar("E")


def _ticket_weight(entry) -> int:
    return entry.tickets


def system_random() -> RandomSource:
    """Cryptographically strong source used for production draws."""
    return secrets.SystemRandom()


def seeded_random(seed: int) -> RandomSource:
    """Deterministic source for tests and for replaying a recorded draw."""
    return random.Random(seed)


def generate_wheel_seed() -> int:
    """Return a random seed in ``[0, 1_000_000)`` for the shared wheel animation."""
    return secrets.randbelow(WHEEL_SEED_RANGE)


def select_weighted_winner(
    pool: Sequence[E],
    random_source: Optional[RandomSource] = None,
    *,
    weight: Callable[[E], int] = _ticket_weight,
) -> Optional[E]:
    """Pick one entry of ``pool`` with probability proportional to its weight.

    A single integer ``r`` is drawn uniformly from ``[0, total)`` and the pool
    is walked in input order; the first entry whose running total exceeds
    ``r`` wins. An entry of weight ``w`` is therefore chosen with probability
    ``w / total``.

    Parameters
    ----------
    pool : Sequence
        Candidates, usually :class:`EligibleParticipant` instances.
    random_source : Optional[RandomSource], default: None
        Source of ``r``. Defaults to :func:`system_random`; pass
        :func:`seeded_random` for reproducible results.
    weight : Callable, default: ``entry.tickets``
        Extracts the integer weight of an entry.

    Returns
    -------
    Optional
        The selected entry, or ``None`` if the pool is empty or carries no
        weight at all.
    """

    if not pool:
        return None

    total = sum(weight(entry) for entry in pool)
    if total <= 0:
        return None

    source = random_source or system_random()
    r = source.randrange(total)

    cumulative = 0
    for entry in pool:
        cumulative += weight(entry)
        if r < cumulative:
            return entry

    # Unreachable with integer weights; never fail to pick from a non-empty pool.
    return pool[-1]


__all__ = [
    "EligibleParticipant",
    "RandomSource",
    "WHEEL_SEED_RANGE",
    "generate_wheel_seed",
    "seeded_random",
    "select_weighted_winner",
    "system_random",
]
