from __future__ import annotations

import math

MIN_WINNERS = 1
MAX_WINNERS = 20
MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 10_080  # one week


class GiveawayError(Exception):
    """Base class for recoverable giveaway failures surfaced to callers."""


class ValidationError(GiveawayError, ValueError):
    """Raised when an input falls outside its supported range."""


class NotFoundError(GiveawayError):
    """Raised when a giveaway id is unknown."""


class InactiveGiveawayError(GiveawayError):
    """Raised when an entry mutation targets a closed giveaway."""


class GiveawayStillOpenError(GiveawayError):
    """Raised when a reroll targets a giveaway that has not closed yet."""


class AlreadyEnteredError(GiveawayError):
    """Raised when a user enters a giveaway twice."""


class NotEnteredError(GiveawayError):
    """Raised when a user leaves a giveaway they never entered."""


class PersistenceError(GiveawayError):
    """Raised when a write to the backing table fails."""


def validate_winner_count(winner_count: int) -> int:
    if winner_count < MIN_WINNERS or winner_count > MAX_WINNERS:
        raise ValidationError(
            f"Number of winners must be between {MIN_WINNERS} and {MAX_WINNERS}"
        )
    return winner_count


def validate_duration_minutes(duration_minutes: int) -> int:
    if duration_minutes < MIN_DURATION_MINUTES or duration_minutes > MAX_DURATION_MINUTES:
        raise ValidationError(
            f"Duration must be between {MIN_DURATION_MINUTES} and "
            f"{MAX_DURATION_MINUTES} minutes (1 week)"
        )
    return duration_minutes


def validate_prize(raw: str) -> str:
    prize = raw.strip()
    if not prize:
        raise ValidationError("Prize cannot be empty")
    if len(prize) > 256:
        raise ValidationError("Prize must be 256 characters or fewer")
    return prize


def _finite(name: str, value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


def validate_config_patch(patch: dict[str, object]) -> dict[str, float]:
    """Check an activity config patch and return it with float values."""
    checked: dict[str, float] = {}
    for key, value in patch.items():
        if value is None:
            continue
        number = _finite(key, value)  # type: ignore[arg-type]
        if key == "activity_multiplier":
            if number < 0:
                raise ValidationError("Activity multiplier cannot be negative")
        elif key == "max_activity_bonus":
            if number < 1:
                raise ValidationError("Max activity bonus must be at least 1")
        elif key in {"message_point_value", "reaction_point_value", "voice_minute_value"}:
            if number < 0:
                raise ValidationError("Point values cannot be negative")
        elif key == "activity_decay_days":
            if number <= 0:
                raise ValidationError("Decay period must be greater than zero days")
        else:
            raise ValidationError(f"Unknown configuration key: {key}")
        checked[key] = number
    return checked


__all__ = [
    "MAX_DURATION_MINUTES",
    "MAX_WINNERS",
    "MIN_DURATION_MINUTES",
    "MIN_WINNERS",
    "AlreadyEnteredError",
    "GiveawayError",
    "GiveawayStillOpenError",
    "InactiveGiveawayError",
    "NotEnteredError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "validate_config_patch",
    "validate_duration_minutes",
    "validate_prize",
    "validate_winner_count",
]
