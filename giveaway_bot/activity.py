"""Per-server activity tracking and the decayed score used to weight draws."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from .models import (
    MS_PER_DAY,
    MS_PER_MINUTE,
    ActivityConfig,
    ActivityKind,
    ActivityRecord,
    now_ms,
)
from .storage import put_item, scan_items
from .validation import PersistenceError, validate_config_patch

log = logging.getLogger(__name__)

BASELINE_SCORE = 1.0
MIN_DECAY = 0.1


class ActivityLedger:
    """Owns every :class:`ActivityRecord` and the scoring configuration."""

    def __init__(
        self,
        table,
        config: ActivityConfig | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._table = table
        self._config = config or ActivityConfig()
        self._clock = clock
        self._records: dict[tuple[str, str], ActivityRecord] = {}
        self._locks: defaultdict[tuple[str, str], asyncio.Lock] = defaultdict(
            asyncio.Lock
        )
        self._config_lock = asyncio.Lock()

    @property
    def config(self) -> ActivityConfig:
        return self._config

    async def load(self) -> int:
        """Load the config document and all activity records from the table."""
        if self._table is None:
            return 0
        try:
            config_item = await asyncio.to_thread(
                self._table.get_item, Key=dict(ActivityConfig.KEY)
            )
            items = await asyncio.to_thread(
                scan_items, self._table, Attr("sk").begins_with(ActivityRecord.SK_PREFIX)
            )
        except (BotoCoreError, ClientError) as exc:
            log.exception("Failed to load activity ledger: %s", exc)
            raise PersistenceError("Failed to load activity ledger") from exc

        if config_item.get("Item"):
            self._config = ActivityConfig.from_item(config_item["Item"])
        for item in items:
            record = ActivityRecord.from_item(item)
            self._records[(record.server_id, record.user_id)] = record
        log.info("Loaded %s activity records", len(self._records))
        return len(self._records)

    def get_record(self, server_id: str, user_id: str) -> ActivityRecord | None:
        return self._records.get((server_id, user_id))

    async def record(
        self,
        server_id: str,
        user_id: str,
        kind: ActivityKind,
        amount: int = 1,
    ) -> ActivityRecord | None:
        """Add ``amount`` of ``kind`` to the user's counters.

        Returns the updated record, or ``None`` when ``amount`` is not positive.
        """
        if amount <= 0:
            return None

        key = (server_id, user_id)
        async with self._locks[key]:
            now = self._clock()
            current = self._records.get(key)
            if current is None:
                updated = ActivityRecord(
                    server_id=server_id, user_id=user_id, last_update_ms=now
                )
            else:
                updated = replace(current)

            if kind is ActivityKind.MESSAGE:
                updated.message_count += amount
            elif kind is ActivityKind.REACTION:
                updated.reaction_count += amount
            else:
                updated.voice_minutes += amount
            updated.last_update_ms = now

            await put_item(
                self._table,
                updated.to_item(),
                what=f"activity for {user_id} in {server_id}",
            )
            self._records[key] = updated
        return updated

    def score(self, server_id: str, user_id: str, *, now: int | None = None) -> float:
        record = self._records.get((server_id, user_id))
        if record is None:
            return BASELINE_SCORE

        cfg = self._config
        if now is None:
            now = self._clock()
        raw = (
            record.message_count * cfg.message_point_value
            + record.reaction_count * cfg.reaction_point_value
            + record.voice_minutes * cfg.voice_minute_value
        )
        days_since_update = max(0.0, (now - record.last_update_ms) / MS_PER_DAY)
        decay = max(MIN_DECAY, 1 - days_since_update / cfg.activity_decay_days)
        value = 1 + raw * decay * cfg.activity_multiplier / 100
        return min(cfg.max_activity_bonus, max(BASELINE_SCORE, value))

    async def update_config(self, **patch: float | None) -> ActivityConfig:
        checked = validate_config_patch(patch)
        async with self._config_lock:
            updated = replace(self._config, **checked)
            if checked:
                await put_item(self._table, updated.to_item(), what="activity config")
                self._config = updated
                log.info("Activity config updated: %s", checked)
        return self._config


class VoiceSessionTracker:
    """Converts voice presence into whole voice minutes."""

    def __init__(self) -> None:
        self._sessions: dict[tuple[str, str], int] = {}

    def is_tracking(self, server_id: str, user_id: str) -> bool:
        return (server_id, user_id) in self._sessions

    def join(self, server_id: str, user_id: str, at_ms: int) -> None:
        self._sessions.setdefault((server_id, user_id), at_ms)

    def leave(self, server_id: str, user_id: str, at_ms: int) -> int:
        started = self._sessions.pop((server_id, user_id), None)
        if started is None:
            return 0
        return max(0, (at_ms - started) // MS_PER_MINUTE)

    def flush(self, at_ms: int) -> list[tuple[str, str, int]]:
        """Close every open session and restart it at ``at_ms``.

        Used by the periodic tick so long sessions accrue minutes before the
        member leaves.
        """
        accrued: list[tuple[str, str, int]] = []
        for (server_id, user_id), started in list(self._sessions.items()):
            minutes = max(0, (at_ms - started) // MS_PER_MINUTE)
            if minutes:
                accrued.append((server_id, user_id, minutes))
                self._sessions[(server_id, user_id)] = started + minutes * MS_PER_MINUTE
        return accrued


__all__ = ["ActivityLedger", "VoiceSessionTracker", "BASELINE_SCORE"]
