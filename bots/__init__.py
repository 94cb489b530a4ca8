"""Discord runtime for the giveaway bot.

The core rules live in :mod:`giveaway_bot`; this package wires them to
discord.py views, slash commands and event listeners.
"""

__all__ = ["config", "giveaway"]
