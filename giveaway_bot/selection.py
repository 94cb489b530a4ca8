"""Activity-weighted winner selection.

Each entrant receives ``ceil(score * 10)`` tickets. A ticket is drawn
uniformly from the pool; its owner wins and every ticket they hold leaves the
pool, so later draws stay normalised over the entrants still in contention
and nobody can win twice.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Iterable

log = logging.getLogger(__name__)

TICKETS_PER_POINT = 10

_system_random = random.SystemRandom()


def ticket_count(score: float) -> int:
    if not math.isfinite(score):
        return 1
    return max(1, math.ceil(score * TICKETS_PER_POINT))


def build_ticket_pool(
    entrants: Iterable[str], score_fn: Callable[[str], float]
) -> list[str]:
    pool: list[str] = []
    # Sorted so a seeded generator reproduces the same draw.
    for user_id in sorted(set(entrants)):
        pool.extend([user_id] * ticket_count(score_fn(user_id)))
    return pool


def select_winners(
    entrants: Iterable[str],
    score_fn: Callable[[str], float],
    count: int,
    *,
    rng: random.Random | None = None,
) -> list[str]:
    """Draw up to ``count`` distinct winners, weighted by ``score_fn``.

    Returns the winners in draw order. An empty entrant set or a non-positive
    count yields an empty list.
    """
    pool = build_ticket_pool(entrants, score_fn)
    if not pool or count <= 0:
        return []

    rng = rng or _system_random
    winners: list[str] = []
    while len(winners) < count and pool:
        drawn = pool[rng.randrange(len(pool))]
        if drawn not in winners:
            winners.append(drawn)
        pool = [ticket for ticket in pool if ticket != drawn]

    log.debug("Selected %s winners: %s", len(winners), winners)
    return winners


def uniform_score(_user_id: str) -> float:
    """Score function used when a giveaway has its activity bonus disabled."""
    return 1.0


__all__ = [
    "TICKETS_PER_POINT",
    "build_ticket_pool",
    "select_winners",
    "ticket_count",
    "uniform_score",
]
