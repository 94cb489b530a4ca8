"""Activity-weighted giveaway core."""

from .actions import ActionKind, GiveawayAction
from .activity import ActivityLedger, VoiceSessionTracker
from .models import (
    ActivityConfig,
    ActivityKind,
    ActivityRecord,
    Giveaway,
    GiveawayFinished,
    GiveawayRerolled,
    GiveawaySpec,
    GiveawayState,
    now_ms,
)
from .scheduler import Announcer, LifecycleScheduler
from .selection import select_winners
from .service import ActionOutcome, GiveawayService
from .storage import GiveawayStore
from .validation import (
    AlreadyEnteredError,
    GiveawayError,
    GiveawayStillOpenError,
    InactiveGiveawayError,
    NotEnteredError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "ActionKind",
    "ActionOutcome",
    "ActivityConfig",
    "ActivityKind",
    "ActivityLedger",
    "ActivityRecord",
    "AlreadyEnteredError",
    "Announcer",
    "Giveaway",
    "GiveawayAction",
    "GiveawayError",
    "GiveawayFinished",
    "GiveawayRerolled",
    "GiveawayService",
    "GiveawaySpec",
    "GiveawayState",
    "GiveawayStillOpenError",
    "GiveawayStore",
    "InactiveGiveawayError",
    "LifecycleScheduler",
    "NotEnteredError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "VoiceSessionTracker",
    "now_ms",
    "select_winners",
]
