"""Bounded event storage."""

from .event_store import (
    CONSOLE_CAPACITY,
    LOG_LEVELS,
    NETWORK_CAPACITY,
    ConsoleEntry,
    EventStore,
    NetworkEntry,
    normalize_level,
)

__all__ = [
    "CONSOLE_CAPACITY",
    "LOG_LEVELS",
    "NETWORK_CAPACITY",
    "ConsoleEntry",
    "EventStore",
    "NetworkEntry",
    "normalize_level",
]
