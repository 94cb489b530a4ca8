from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace

from boto3.dynamodb.conditions import Attr, ConditionBase
from botocore.exceptions import BotoCoreError, ClientError

from .models import (
    MS_PER_MINUTE,
    Giveaway,
    GiveawaySpec,
    GiveawayState,
    now_ms,
)
from .validation import (
    AlreadyEnteredError,
    InactiveGiveawayError,
    NotEnteredError,
    NotFoundError,
    PersistenceError,
    validate_duration_minutes,
    validate_prize,
    validate_winner_count,
)

log = logging.getLogger(__name__)


async def put_item(table, item: dict[str, object], *, what: str) -> None:
    """Write ``item`` to ``table`` off the event loop.

    A ``None`` table means the caller runs without durability (tests and the
    simulator); the write is skipped.
    """
    if table is None:
        log.debug("No table configured; skipping write of %s", what)
        return
    try:
        await asyncio.to_thread(table.put_item, Item=item)
    except (BotoCoreError, ClientError, OSError) as exc:
        log.exception("Failed to persist %s: %s", what, exc)
        raise PersistenceError(f"Failed to persist {what}") from exc


def scan_items(table, filter_expression: ConditionBase) -> list[dict[str, object]]:
    """Return every item matching ``filter_expression``, following pagination."""
    items: list[dict[str, object]] = []
    scan_kwargs: dict[str, object] = {"FilterExpression": filter_expression}
    while True:
        resp = table.scan(**scan_kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            break
        scan_kwargs["ExclusiveStartKey"] = last_key
    return items


class GiveawayStore:
    """Authoritative record of giveaways, their entrants and lifecycle state.

    Reads are served from memory. Every mutation builds an updated copy of the
    record, writes it through to the table and only then swaps it in, so a
    failed write leaves the last committed version visible.
    """

    def __init__(self, table, *, clock: Callable[[], int] = now_ms) -> None:
        self._table = table
        self._clock = clock
        self._giveaways: dict[str, Giveaway] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._create_lock = asyncio.Lock()
        self._last_id = 0

    async def load(self) -> int:
        """Populate memory from the table and return the number of giveaways."""
        if self._table is None:
            return 0
        try:
            items = await asyncio.to_thread(
                scan_items, self._table, Attr("sk").eq(Giveaway.SK_VALUE)
            )
        except (BotoCoreError, ClientError) as exc:
            log.exception("Failed to load giveaways: %s", exc)
            raise PersistenceError("Failed to load giveaways") from exc

        for item in items:
            giveaway = Giveaway.from_item(item)
            self._giveaways[giveaway.giveaway_id] = giveaway
            if giveaway.giveaway_id.isdigit():
                self._last_id = max(self._last_id, int(giveaway.giveaway_id))
        log.info("Loaded %s giveaways", len(self._giveaways))
        return len(self._giveaways)

    # ----- Queries -----
    def get(self, giveaway_id: str) -> Giveaway:
        giveaway = self._giveaways.get(giveaway_id)
        if giveaway is None:
            raise NotFoundError(f"Giveaway {giveaway_id} not found")
        return giveaway

    def list_open_expired(self, now: int) -> list[Giveaway]:
        expired = [
            giveaway
            for giveaway in self._giveaways.values()
            if giveaway.is_open and giveaway.end_ms <= now
        ]
        # Numeric ids sort by length first so "999" precedes "1000".
        expired.sort(
            key=lambda giveaway: (
                giveaway.end_ms,
                len(giveaway.giveaway_id),
                giveaway.giveaway_id,
            )
        )
        return expired

    def list_active(self, server_id: str) -> list[Giveaway]:
        return [
            giveaway
            for giveaway in self._giveaways.values()
            if giveaway.is_open and giveaway.server_id == server_id
        ]

    def list_open(self) -> list[Giveaway]:
        return [giveaway for giveaway in self._giveaways.values() if giveaway.is_open]

    # ----- Mutations -----
    def _lock_for(self, giveaway_id: str) -> asyncio.Lock:
        # Unknown ids raise before a lock is allocated for them.
        self.get(giveaway_id)
        return self._locks[giveaway_id]

    async def _commit(self, giveaway: Giveaway) -> Giveaway:
        await put_item(
            self._table, giveaway.to_item(), what=f"giveaway {giveaway.giveaway_id}"
        )
        self._giveaways[giveaway.giveaway_id] = giveaway
        return giveaway

    def _next_id(self, now: int) -> str:
        # Ids double as creation order, so two creates in the same
        # millisecond still get distinct increasing ids.
        self._last_id = max(now, self._last_id + 1)
        return str(self._last_id)

    async def create(self, server_id: str, channel_id: str, spec: GiveawaySpec) -> str:
        validate_winner_count(spec.winner_count)
        validate_duration_minutes(spec.duration_minutes)
        prize = validate_prize(spec.prize)

        async with self._create_lock:
            now = self._clock()
            previous_id = self._last_id
            giveaway = Giveaway(
                giveaway_id=self._next_id(now),
                server_id=str(server_id),
                channel_id=str(channel_id),
                prize=prize,
                winner_count=spec.winner_count,
                end_ms=now + spec.duration_minutes * MS_PER_MINUTE,
                host_user_id=str(spec.host_user_id),
                created_ms=now,
                description=spec.description or None,
                requirements=spec.requirements or None,
                activity_bonus_enabled=spec.activity_bonus_enabled,
            )
            try:
                await self._commit(giveaway)
            except PersistenceError:
                self._last_id = previous_id
                raise

        log.info(
            "Created giveaway %s in server %s (%s winners, ends %s)",
            giveaway.giveaway_id,
            giveaway.server_id,
            giveaway.winner_count,
            giveaway.end_ms,
        )
        return giveaway.giveaway_id

    async def add_entry(self, giveaway_id: str, user_id: str) -> Giveaway:
        async with self._lock_for(giveaway_id):
            current = self.get(giveaway_id)
            if not current.is_open:
                raise InactiveGiveawayError(f"Giveaway {giveaway_id} is no longer active")
            if user_id in current.entries:
                raise AlreadyEnteredError(f"{user_id} already entered {giveaway_id}")
            updated = await self._commit(
                replace(current, entries=[*current.entries, user_id])
            )
        log.debug("User %s entered giveaway %s", user_id, giveaway_id)
        return updated

    async def remove_entry(self, giveaway_id: str, user_id: str) -> Giveaway:
        async with self._lock_for(giveaway_id):
            current = self.get(giveaway_id)
            if not current.is_open:
                raise InactiveGiveawayError(f"Giveaway {giveaway_id} is no longer active")
            if user_id not in current.entries:
                raise NotEnteredError(f"{user_id} is not entered in {giveaway_id}")
            updated = await self._commit(
                replace(
                    current,
                    entries=[entry for entry in current.entries if entry != user_id],
                )
            )
        log.debug("User %s left giveaway %s", user_id, giveaway_id)
        return updated

    async def close(self, giveaway_id: str) -> bool:
        """Close the giveaway; return True only for the call that closed it."""
        async with self._lock_for(giveaway_id):
            current = self.get(giveaway_id)
            if not current.is_open:
                return False
            await self._commit(
                replace(current, state=GiveawayState.CLOSED, closed_ms=self._clock())
            )
        log.info("Closed giveaway %s", giveaway_id)
        return True

    async def record_winners(self, giveaway_id: str, winners: list[str]) -> Giveaway:
        async with self._lock_for(giveaway_id):
            current = self.get(giveaway_id)
            return await self._commit(replace(current, winners=list(winners)))

    async def set_announcement_ref(self, giveaway_id: str, ref: str) -> Giveaway:
        async with self._lock_for(giveaway_id):
            current = self.get(giveaway_id)
            return await self._commit(replace(current, announcement_ref=str(ref)))


__all__ = ["GiveawayStore", "put_item", "scan_items"]
