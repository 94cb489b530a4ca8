"""Command-surface facade over the store, ledger and scheduler."""

from __future__ import annotations

from dataclasses import dataclass

from .actions import ActionKind, GiveawayAction
from .activity import ActivityLedger
from .models import (
    ActivityConfig,
    ActivityRecord,
    Giveaway,
    GiveawayFinished,
    GiveawayRerolled,
    GiveawaySpec,
)
from .scheduler import LifecycleScheduler
from .storage import GiveawayStore
from .validation import InactiveGiveawayError, NotFoundError


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    """Result of dispatching a :class:`GiveawayAction`."""

    action: GiveawayAction
    giveaway: Giveaway
    score: float | None = None
    finished: GiveawayFinished | None = None
    rerolled: GiveawayRerolled | None = None


class GiveawayService:
    def __init__(
        self,
        store: GiveawayStore,
        ledger: ActivityLedger,
        scheduler: LifecycleScheduler,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.scheduler = scheduler

    async def load(self) -> None:
        await self.ledger.load()
        await self.store.load()

    def _in_server(self, giveaway_id: str, server_id: str) -> Giveaway:
        giveaway = self.store.get(giveaway_id)
        if giveaway.server_id != server_id:
            raise NotFoundError(f"Giveaway {giveaway_id} not found in this server")
        return giveaway

    async def create_giveaway(
        self, server_id: str, channel_id: str, spec: GiveawaySpec
    ) -> Giveaway:
        giveaway_id = await self.store.create(server_id, channel_id, spec)
        return self.store.get(giveaway_id)

    async def end_giveaway(self, giveaway_id: str, server_id: str) -> GiveawayFinished:
        giveaway = self._in_server(giveaway_id, server_id)
        if not giveaway.is_open:
            raise InactiveGiveawayError("This giveaway has already ended")
        event = await self.scheduler.finish(giveaway_id)
        if event is None:
            raise InactiveGiveawayError("This giveaway has already ended")
        return event

    async def reroll(
        self, giveaway_id: str, server_id: str, count: int = 1
    ) -> GiveawayRerolled:
        self._in_server(giveaway_id, server_id)
        return await self.scheduler.reroll(giveaway_id, count)

    def list_active(self, server_id: str) -> list[Giveaway]:
        active = self.store.list_active(server_id)
        active.sort(key=lambda giveaway: giveaway.end_ms)
        return active

    def get_activity_score(self, server_id: str, user_id: str) -> float:
        return self.ledger.score(server_id, user_id)

    def get_activity(self, server_id: str, user_id: str) -> ActivityRecord:
        record = self.ledger.get_record(server_id, user_id)
        if record is None:
            return ActivityRecord(server_id=server_id, user_id=user_id)
        return record

    async def update_config(self, **patch: float | None) -> ActivityConfig:
        return await self.ledger.update_config(**patch)

    async def handle_action(
        self, action: GiveawayAction, user_id: str, server_id: str
    ) -> ActionOutcome:
        if action.kind is ActionKind.ENTER:
            giveaway = await self.store.add_entry(action.giveaway_id, user_id)
            score = None
            if giveaway.activity_bonus_enabled:
                score = self.ledger.score(giveaway.server_id, user_id)
            return ActionOutcome(action, giveaway, score=score)
        if action.kind is ActionKind.LEAVE:
            giveaway = await self.store.remove_entry(action.giveaway_id, user_id)
            return ActionOutcome(action, giveaway)
        if action.kind is ActionKind.END:
            finished = await self.end_giveaway(action.giveaway_id, server_id)
            return ActionOutcome(action, finished.giveaway, finished=finished)
        rerolled = await self.reroll(action.giveaway_id, server_id, action.count or 1)
        return ActionOutcome(action, rerolled.giveaway, rerolled=rerolled)


__all__ = ["ActionOutcome", "GiveawayService"]
