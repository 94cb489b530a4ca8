from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, fields
from typing import ClassVar

MS_PER_MINUTE = 60_000
MS_PER_DAY = 86_400_000


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _opt_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class ActivityKind(enum.Enum):
    MESSAGE = "message"
    REACTION = "reaction"
    VOICE_MINUTE = "voice_minute"


class GiveawayState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(slots=True)
class ActivityRecord:
    server_id: str
    user_id: str
    message_count: int = 0
    reaction_count: int = 0
    voice_minutes: int = 0
    last_update_ms: int = 0

    PK_TEMPLATE: ClassVar[str] = "GUILD#%s"
    SK_PREFIX: ClassVar[str] = "ACTIVITY#"

    @classmethod
    def key(cls, server_id: str, user_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % server_id, "sk": f"{cls.SK_PREFIX}{user_id}"}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = dict(self.key(self.server_id, self.user_id))
        item.update(
            {
                "message_count": self.message_count,
                "reaction_count": self.reaction_count,
                "voice_minutes": self.voice_minutes,
                "last_update_ms": self.last_update_ms,
            }
        )
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> ActivityRecord:
        server_id = str(item["pk"]).split("#", 1)[1]
        user_id = str(item["sk"])[len(cls.SK_PREFIX) :]
        return cls(
            server_id=server_id,
            user_id=user_id,
            message_count=int(item.get("message_count", 0)),  # type: ignore[arg-type]
            reaction_count=int(item.get("reaction_count", 0)),  # type: ignore[arg-type]
            voice_minutes=int(item.get("voice_minutes", 0)),  # type: ignore[arg-type]
            last_update_ms=int(item.get("last_update_ms", 0)),  # type: ignore[arg-type]
        )


@dataclass(frozen=True, slots=True)
class ActivityConfig:
    """Tunables for activity scoring."""

    activity_multiplier: float = 1.5
    max_activity_bonus: float = 5.0
    message_point_value: float = 1.0
    reaction_point_value: float = 0.5
    voice_minute_value: float = 2.0
    activity_decay_days: float = 30.0

    KEY: ClassVar[dict[str, str]] = {"pk": "CONFIG", "sk": "ACTIVITY"}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = dict(self.KEY)
        # DynamoDB rejects Python floats, so tunables are stored as strings.
        for f in fields(self):
            item[f.name] = str(getattr(self, f.name))
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> ActivityConfig:
        values: dict[str, float] = {}
        for f in fields(cls):
            raw = item.get(f.name)
            if raw is None:
                continue
            try:
                values[f.name] = float(raw)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
        return cls(**values)

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True, slots=True)
class GiveawaySpec:
    prize: str
    duration_minutes: int
    winner_count: int
    host_user_id: str
    requirements: str | None = None
    description: str | None = None
    activity_bonus_enabled: bool = True


@dataclass(slots=True)
class Giveaway:
    giveaway_id: str
    server_id: str
    channel_id: str
    prize: str
    winner_count: int
    end_ms: int
    host_user_id: str
    created_ms: int
    description: str | None = None
    requirements: str | None = None
    activity_bonus_enabled: bool = True
    entries: list[str] = field(default_factory=list)
    state: GiveawayState = GiveawayState.OPEN
    closed_ms: int | None = None
    announcement_ref: str | None = None
    winners: list[str] = field(default_factory=list)

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_VALUE: ClassVar[str] = "META"

    @property
    def is_open(self) -> bool:
        return self.state is GiveawayState.OPEN

    @classmethod
    def key(cls, giveaway_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % giveaway_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = dict(self.key(self.giveaway_id))
        item.update(
            {
                "giveaway_id": self.giveaway_id,
                "server_id": self.server_id,
                "channel_id": self.channel_id,
                "prize": self.prize,
                "winner_count": self.winner_count,
                "end_ms": self.end_ms,
                "host_user_id": self.host_user_id,
                "created_ms": self.created_ms,
                "activity_bonus_enabled": self.activity_bonus_enabled,
                "entries": list(self.entries),
                "state": self.state.value,
                "winners": list(self.winners),
            }
        )
        if self.description:
            item["description"] = self.description
        if self.requirements:
            item["requirements"] = self.requirements
        if self.closed_ms is not None:
            item["closed_ms"] = self.closed_ms
        if self.announcement_ref:
            item["announcement_ref"] = self.announcement_ref
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Giveaway:
        giveaway_id = str(item.get("giveaway_id") or str(item["pk"]).split("#", 1)[1])
        closed_raw = item.get("closed_ms")
        try:
            state = GiveawayState(str(item.get("state", GiveawayState.OPEN.value)))
        except ValueError:  # pragma: no cover - defensive
            state = GiveawayState.OPEN
        return cls(
            giveaway_id=giveaway_id,
            server_id=str(item.get("server_id", "")),
            channel_id=str(item.get("channel_id", "")),
            prize=str(item.get("prize", "")),
            winner_count=int(item.get("winner_count", 1)),  # type: ignore[arg-type]
            end_ms=int(item.get("end_ms", 0)),  # type: ignore[arg-type]
            host_user_id=str(item.get("host_user_id", "")),
            created_ms=int(item.get("created_ms", 0)),  # type: ignore[arg-type]
            description=_opt_str(item.get("description")),
            requirements=_opt_str(item.get("requirements")),
            activity_bonus_enabled=bool(item.get("activity_bonus_enabled", True)),
            entries=[str(user) for user in item.get("entries", []) or []],  # type: ignore[union-attr]
            state=state,
            closed_ms=int(closed_raw) if closed_raw is not None else None,  # type: ignore[arg-type]
            announcement_ref=_opt_str(item.get("announcement_ref")),
            winners=[str(user) for user in item.get("winners", []) or []],  # type: ignore[union-attr]
        )


@dataclass(frozen=True, slots=True)
class GiveawayFinished:
    giveaway_id: str
    winners: tuple[str, ...]
    giveaway: Giveaway


@dataclass(frozen=True, slots=True)
class GiveawayRerolled:
    giveaway_id: str
    winners: tuple[str, ...]
    giveaway: Giveaway


__all__ = [
    "MS_PER_DAY",
    "MS_PER_MINUTE",
    "ActivityConfig",
    "ActivityKind",
    "ActivityRecord",
    "Giveaway",
    "GiveawayFinished",
    "GiveawayRerolled",
    "GiveawaySpec",
    "GiveawayState",
    "now_ms",
]
