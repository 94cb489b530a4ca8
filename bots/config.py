"""Configuration helpers for the giveaway runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class EnvironmentConfig:
    discord_token: str
    giveaway_table_name: str
    aws_region: str = "us-east-1"
    admin_role_id: int | None = None
    guild_id: int | None = None
    sweep_seconds: int = 60
    winner_channels: bool = True

    @classmethod
    def load(cls) -> EnvironmentConfig:
        missing: list[str] = []

        def need(name: str) -> str:
            value = os.getenv(name)
            if not value:
                missing.append(name)
                return ""
            return value

        discord_token = need("DISCORD_TOKEN")
        giveaway_table_name = need("GIVEAWAY_TABLE_NAME")

        if missing:
            raise RuntimeError("Missing env vars: " + ", ".join(sorted(set(missing))))

        sweep_seconds = env_int("GIVEAWAY_SWEEP_SECONDS", default=60) or 60
        return cls(
            discord_token=discord_token,
            giveaway_table_name=giveaway_table_name,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            admin_role_id=env_int("GIVEAWAY_ADMIN_ROLE_ID"),
            guild_id=env_int("GIVEAWAY_GUILD_ID"),
            sweep_seconds=max(1, sweep_seconds),
            winner_channels=env_bool("GIVEAWAY_WINNER_CHANNELS", default=True),
        )
