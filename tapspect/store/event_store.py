"""Bounded host-side store for captured console and network events."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Dict, Optional, Tuple

from ..utils.event_id import make_entry_id

logger = logging.getLogger(__name__)

LOG_LEVELS = ("log", "info", "warn", "error", "debug")

CONSOLE_CAPACITY = 5000
NETWORK_CAPACITY = 2000


def normalize_level(level) -> str:
    """Map anything that is not a known level name to "log"."""
    return level if level in LOG_LEVELS else "log"


def format_timestamp(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


@dataclass(frozen=True)
class ConsoleEntry:
    """One console line, either forwarded from the page or synthesized by the host."""

    id: str
    level: str
    message: str
    timestamp: str


@dataclass(frozen=True)
class NetworkEntry:
    """One completed (or transport-failed) fetch/XHR exchange.

    ``status_code == 0`` means the request never got an HTTP response.
    """

    id: str
    method: str
    url: str
    status_code: Optional[int]
    duration_seconds: Optional[float]
    timestamp: str
    request_headers: Optional[Dict[str, str]] = None
    request_body: Optional[str] = None
    response_headers: Optional[Dict[str, str]] = None
    response_body: Optional[str] = None
    response_content_type: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status_code == 0


class EventStore:
    """Two fixed-capacity sequences in arrival order plus the error counter.

    Every insert evicts from the front when the sequence is full, so memory
    stays bounded no matter how fast the page produces events. Mutations are
    serialized with a lock; readers get tuple snapshots.
    """

    def __init__(self, console_capacity: int = CONSOLE_CAPACITY,
                 network_capacity: int = NETWORK_CAPACITY,
                 change_callback: Optional[Callable[[str, Optional[object]], None]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        if console_capacity < 1 or network_capacity < 1:
            raise ValueError("capacities must be positive")
        self.console_capacity = console_capacity
        self.network_capacity = network_capacity
        self.change_callback = change_callback
        self._clock = clock
        self._lock = threading.Lock()
        self._console: Deque[ConsoleEntry] = deque()
        self._network: Deque[NetworkEntry] = deque()
        self._error_count = 0
        self._sequence = 0

    def _next_id(self, kind: str, timestamp: str) -> str:
        self._sequence += 1
        return make_entry_id(kind, timestamp, self._sequence)

    def append_console(self, level: str, message: str, kind: str = "console") -> ConsoleEntry:
        """Append a console entry, evicting the oldest ones when full.

        ``kind`` is passed to the change callback so listeners can tell
        host-synthesized lines from page output.
        """
        level = normalize_level(level)
        with self._lock:
            timestamp = format_timestamp(self._clock())
            entry = ConsoleEntry(
                id=self._next_id("console", timestamp),
                level=level,
                message=message,
                timestamp=timestamp
            )
            while len(self._console) >= self.console_capacity:
                evicted = self._console.popleft()
                if evicted.level == "error":
                    self._error_count -= 1
            self._console.append(entry)
            if entry.level == "error":
                self._error_count += 1
        self._notify(kind, entry)
        return entry

    def append_network(self, method: str, url: str, status: Optional[int] = None,
                       duration: Optional[float] = None,
                       request_headers: Optional[Dict[str, str]] = None,
                       request_body: Optional[str] = None,
                       response_headers: Optional[Dict[str, str]] = None,
                       response_body: Optional[str] = None,
                       response_content_type: Optional[str] = None) -> NetworkEntry:
        """Append a network entry, evicting the oldest ones when full."""
        with self._lock:
            timestamp = format_timestamp(self._clock())
            entry = NetworkEntry(
                id=self._next_id("network", timestamp),
                method=method,
                url=url,
                status_code=status,
                duration_seconds=duration,
                timestamp=timestamp,
                request_headers=request_headers,
                request_body=request_body,
                response_headers=response_headers,
                response_body=response_body,
                response_content_type=response_content_type
            )
            while len(self._network) >= self.network_capacity:
                self._network.popleft()
            self._network.append(entry)
        self._notify("network", entry)
        return entry

    def clear_console(self) -> None:
        with self._lock:
            self._console.clear()
            self._error_count = 0
        self._notify("console")

    def clear_network(self) -> None:
        with self._lock:
            self._network.clear()
        self._notify("network")

    def clear_all(self) -> None:
        """Empty both sequences, as done when the hosted URL changes."""
        self.clear_console()
        self.clear_network()

    @property
    def console_entries(self) -> Tuple[ConsoleEntry, ...]:
        with self._lock:
            return tuple(self._console)

    @property
    def network_entries(self) -> Tuple[NetworkEntry, ...]:
        with self._lock:
            return tuple(self._network)

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    def _notify(self, kind: str, entry: Optional[object] = None) -> None:
        if not self.change_callback:
            return
        try:
            self.change_callback(kind, entry)
        except Exception as e:
            logger.warning(f"Error in store change callback: {e}")
