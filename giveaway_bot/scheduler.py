from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Protocol

from discord.ext import tasks

from .activity import ActivityLedger
from .models import Giveaway, GiveawayFinished, GiveawayRerolled, now_ms
from .selection import select_winners, uniform_score
from .storage import GiveawayStore
from .validation import (
    GiveawayError,
    GiveawayStillOpenError,
    PersistenceError,
    validate_winner_count,
)

log = logging.getLogger(__name__)

DEFAULT_SWEEP_SECONDS = 60.0


class Announcer(Protocol):
    async def giveaway_finished(self, event: GiveawayFinished) -> None: ...

    async def giveaway_rerolled(self, event: GiveawayRerolled) -> None: ...


class LifecycleScheduler:
    """Drives expired giveaways through close, draw, record and announce."""

    def __init__(
        self,
        store: GiveawayStore,
        ledger: ActivityLedger,
        announcer: Announcer | None = None,
        *,
        interval_seconds: float = DEFAULT_SWEEP_SECONDS,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self.announcer = announcer
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._rng = rng
        self._loop: tasks.Loop | None = None

    # ----- Drawing -----
    def score_fn_for(self, giveaway: Giveaway) -> Callable[[str], float]:
        if not giveaway.activity_bonus_enabled:
            return uniform_score
        now = self._clock()
        server_id = giveaway.server_id

        def score(user_id: str) -> float:
            return self._ledger.score(server_id, user_id, now=now)

        return score

    def draw(self, giveaway: Giveaway, count: int) -> list[str]:
        return select_winners(
            giveaway.entries, self.score_fn_for(giveaway), count, rng=self._rng
        )

    # ----- Lifecycle -----
    async def finish(self, giveaway_id: str) -> GiveawayFinished | None:
        """Close and draw a giveaway.

        Returns ``None`` when the giveaway was already closed by someone else,
        so a racing sweep and end command announce only once.
        """
        if not await self._store.close(giveaway_id):
            log.debug("Giveaway %s already closed; skipping draw", giveaway_id)
            return None

        giveaway = self._store.get(giveaway_id)
        winners = self.draw(giveaway, giveaway.winner_count)
        try:
            giveaway = await self._store.record_winners(giveaway_id, winners)
        except PersistenceError:
            log.warning(
                "Giveaway %s closed but its winners could not be recorded", giveaway_id
            )

        log.info(
            "Giveaway %s finished with %s/%s winners from %s entries",
            giveaway_id,
            len(winners),
            giveaway.winner_count,
            len(giveaway.entries),
        )
        event = GiveawayFinished(giveaway_id, tuple(winners), giveaway)
        if self.announcer is not None:
            try:
                await self.announcer.giveaway_finished(event)
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("Failed to announce giveaway %s: %s", giveaway_id, exc)
        return event

    async def reroll(self, giveaway_id: str, count: int) -> GiveawayRerolled:
        validate_winner_count(count)
        giveaway = self._store.get(giveaway_id)
        if giveaway.is_open:
            raise GiveawayStillOpenError(f"Giveaway {giveaway_id} is still running")

        winners = self.draw(giveaway, count)
        log.info("Rerolled giveaway %s: %s", giveaway_id, winners)
        event = GiveawayRerolled(giveaway_id, tuple(winners), giveaway)
        if self.announcer is not None:
            try:
                await self.announcer.giveaway_rerolled(event)
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("Failed to announce reroll of %s: %s", giveaway_id, exc)
        return event

    async def sweep(self, now: int | None = None) -> list[GiveawayFinished]:
        if now is None:
            now = self._clock()
        finished: list[GiveawayFinished] = []
        for giveaway in self._store.list_open_expired(now):
            try:
                event = await self.finish(giveaway.giveaway_id)
            except GiveawayError as exc:
                log.warning(
                    "Could not finish giveaway %s this sweep: %s",
                    giveaway.giveaway_id,
                    exc,
                )
                continue
            if event is not None:
                finished.append(event)
        return finished

    # ----- Timer -----
    async def _tick(self) -> None:
        try:
            await self.sweep()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Giveaway sweep failed: %s", exc)

    @property
    def is_running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    def start(self) -> None:
        if self._loop is None:
            self._loop = tasks.loop(seconds=self.interval_seconds)(self._tick)
        if not self._loop.is_running():
            self._loop.start()
            log.info("Giveaway sweep started (every %ss)", self.interval_seconds)

    def stop(self) -> None:
        if self._loop is not None and self._loop.is_running():
            self._loop.cancel()


__all__ = ["Announcer", "DEFAULT_SWEEP_SECONDS", "LifecycleScheduler"]
