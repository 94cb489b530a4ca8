"""Typed giveaway actions built once at the Discord boundary."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

CUSTOM_ID_PREFIX = "giveaway"

_CUSTOM_ID_PATTERN = re.compile(r"^giveaway:(enter|leave|end|reroll):(\d+)$")


class ActionKind(enum.Enum):
    ENTER = "enter"
    LEAVE = "leave"
    END = "end"
    REROLL = "reroll"


@dataclass(frozen=True, slots=True)
class GiveawayAction:
    kind: ActionKind
    giveaway_id: str
    count: int | None = None

    @property
    def custom_id(self) -> str:
        return f"{CUSTOM_ID_PREFIX}:{self.kind.value}:{self.giveaway_id}"

    @classmethod
    def from_custom_id(cls, raw: str | None) -> GiveawayAction | None:
        """Parse a component custom id; ``None`` when it is not ours."""
        if not raw:
            return None
        match = _CUSTOM_ID_PATTERN.match(raw.strip())
        if not match:
            return None
        kind, giveaway_id = match.groups()
        return cls(kind=ActionKind(kind), giveaway_id=giveaway_id)

    @classmethod
    def enter(cls, giveaway_id: str) -> GiveawayAction:
        return cls(ActionKind.ENTER, giveaway_id)

    @classmethod
    def leave(cls, giveaway_id: str) -> GiveawayAction:
        return cls(ActionKind.LEAVE, giveaway_id)

    @classmethod
    def end(cls, giveaway_id: str) -> GiveawayAction:
        return cls(ActionKind.END, giveaway_id)

    @classmethod
    def reroll(cls, giveaway_id: str, count: int = 1) -> GiveawayAction:
        return cls(ActionKind.REROLL, giveaway_id, count)


__all__ = ["ActionKind", "CUSTOM_ID_PREFIX", "GiveawayAction"]
