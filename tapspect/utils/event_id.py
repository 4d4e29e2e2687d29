"""Short entry ids for captured events.

Ids are blake2s digests over the entry kind, timestamp and a per-store
sequence number. The sequence number makes them unique within a store even
when two entries share a millisecond timestamp and identical content.
"""

from __future__ import annotations

import hashlib
from typing import Any


def _to_str(v: Any) -> str:
    if v is None:
        return ""
    try:
        return str(v)
    except Exception:
        return ""


def make_entry_id(kind: str, timestamp: str, sequence: int, *parts: Any) -> str:
    """Return a 20 hex char id for an entry."""
    base = "|".join([_to_str(kind), _to_str(timestamp), f"seq:{sequence}"] + [_to_str(p) for p in parts])
    h = hashlib.blake2s(base.encode("utf-8"), digest_size=10)
    return h.hexdigest()
