"""JSONL export of an event store snapshot."""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..store.event_store import EventStore

logger = logging.getLogger(__name__)


def _write_jsonl(path: Path, records: Iterable[Dict[str, Any]]) -> int:
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for record in records:
            # ASCII escapes keep lone surrogates from page strings writable
            f.write(json.dumps(record) + "\n")
            count += 1
    return count


def export_store(store: EventStore, data_dir: Path, url: Optional[str] = None) -> Path:
    """Write console.jsonl, network.jsonl and overview.json into a new session directory."""
    session_dir = data_dir / f"session_{datetime.now().strftime('%Y-%m-%d_%H%M%S')}"
    session_dir.mkdir(parents=True, exist_ok=True)

    console_count = _write_jsonl(session_dir / "console.jsonl",
                                 (asdict(entry) for entry in store.console_entries))
    network_count = _write_jsonl(session_dir / "network.jsonl",
                                 (asdict(entry) for entry in store.network_entries))

    overview = {
        "url": url,
        "exportedAt": datetime.now().isoformat(),
        "consoleEntries": console_count,
        "networkEntries": network_count,
        "errorCount": store.error_count,
    }
    with open(session_dir / "overview.json", "w", encoding="utf-8") as f:
        json.dump(overview, f, indent=2)

    logger.info(f"Exported {console_count} console and {network_count} network entries to {session_dir}")
    return session_dir
