"""Plain-text rendering of captured events and small URL/JSON helpers."""

import json
from typing import Iterable
from urllib.parse import urlparse

from .store.event_store import ConsoleEntry, NetworkEntry


def is_valid_web_url(value: str) -> bool:
    """True for http(s) URLs with a host; used to validate user-entered URLs."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.hostname)


def pretty_format_json(raw: str) -> str:
    """Indent and key-sort a JSON document, or return it untouched."""
    try:
        return json.dumps(json.loads(raw), indent=2, sort_keys=True, ensure_ascii=False)
    except (ValueError, TypeError):
        return raw


def format_console_entry(entry: ConsoleEntry) -> str:
    return f"[{entry.level.upper()}] {entry.timestamp} {entry.message}"


def format_network_entry(entry: NetworkEntry) -> str:
    status = str(entry.status_code) if entry.status_code is not None else "---"
    duration = f"{entry.duration_seconds * 1000:.0f}ms" if entry.duration_seconds is not None else "---"
    return f"{entry.method} {status} {duration} {entry.url} [{entry.timestamp}]"


def format_console_entries(entries: Iterable[ConsoleEntry]) -> str:
    """Clipboard text for the console tab, one entry per line."""
    return "\n".join(format_console_entry(entry) for entry in entries)


def format_network_entries(entries: Iterable[NetworkEntry]) -> str:
    """Clipboard text for the network tab, one exchange per line."""
    return "\n".join(format_network_entry(entry) for entry in entries)
