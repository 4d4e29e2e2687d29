"""Navigation observer: page-load lifecycle to console entries."""

import asyncio
import logging
import webbrowser
from typing import Any, Callable, Dict, Optional, Set
from urllib.parse import urlparse

from ..core.connector import ChromeConnector
from ..store.event_store import EventStore

logger = logging.getLogger(__name__)

SURFACE_SCHEMES = frozenset({"http", "https", "about", "blob", "data"})
CANCELLED_ERRORS = frozenset({"net::ERR_ABORTED"})

NAVIGATING_PREFIX = "⇢ Navigating to: "
LOADED_PREFIX = "✓ Loaded: "
NAVIGATION_FAILED_PREFIX = "✗ Navigation failed: "
LOAD_FAILED_PREFIX = "✗ Failed to load: "
NAVIGATION_PREFIXES = (NAVIGATING_PREFIX, LOADED_PREFIX, NAVIGATION_FAILED_PREFIX, LOAD_FAILED_PREFIX)

# Store change-callback kind for host-synthesized lifecycle lines
NAVIGATION_KIND = "navigation"
ERROR_PAGE_SCHEME = "chrome-error"


def url_scheme(url: str) -> str:
    try:
        return urlparse(url).scheme.lower()
    except Exception:
        return ""


class NavigationPolicy:
    """Decide which URLs load inside the rendering surface.

    Anything outside SURFACE_SCHEMES (tel:, mailto:, app links...) is handed
    to the platform's default handler instead.
    """

    def __init__(self, opener: Optional[Callable[[str], Any]] = None):
        self.opener = opener or webbrowser.open

    def allows(self, url: str) -> bool:
        return url_scheme(url) in SURFACE_SCHEMES

    def hand_off(self, url: str) -> bool:
        """Give ``url`` to the default handler; False when nothing took it."""
        try:
            return bool(self.opener(url))
        except Exception as e:
            logger.warning(f"Failed to open {url} externally: {e}")
            return False


class NavigationObserver:
    """Record navigation start, finish and failure of one page session.

    Entries go straight into the store; this is host code and does not
    travel over the bridge. ``load_error`` holds the description of the last
    non-cancelled failure until the next navigation starts.
    """

    def __init__(self, connector: ChromeConnector, session_id: str, store: EventStore,
                 policy: Optional[NavigationPolicy] = None,
                 status_callback: Optional[Callable] = None):
        self.connector = connector
        self.session_id = session_id
        self.store = store
        self.policy = policy or NavigationPolicy()
        self.status_callback = status_callback
        self.load_error: Optional[str] = None
        self.main_frame_id: Optional[str] = None
        self.current_url: str = ""
        # requestId (== loaderId) -> url for main-frame document loads in flight
        self._document_requests: Dict[str, str] = {}
        self._committed: Set[str] = set()
        # Set by a failure; the error page Chrome then commits is not a load
        self._load_failed = False
        self._pending_tasks: Set[asyncio.Task] = set()

    async def start_monitoring(self) -> None:
        self.connector.on_event("Network.requestWillBeSent", self._on_request_will_be_sent)
        self.connector.on_event("Network.loadingFinished", self._on_loading_finished)
        self.connector.on_event("Network.loadingFailed", self._on_loading_failed)
        self.connector.on_event("Page.frameNavigated", self._on_frame_navigated)
        self.connector.on_event("Page.loadEventFired", self._on_load_event_fired)
        self.connector.on_event("Page.frameRequestedNavigation", self._on_frame_requested_navigation)

        try:
            frame_tree = await self.connector.call("Page.getFrameTree", session_id=self.session_id)
            frame = frame_tree.get("frameTree", {}).get("frame", {})
            self.main_frame_id = frame.get("id")
            self.current_url = frame.get("url", "")
        except Exception as e:
            logger.debug(f"Could not read frame tree: {e}")

    async def stop_monitoring(self) -> None:
        self.connector.off_event("Network.requestWillBeSent", self._on_request_will_be_sent)
        self.connector.off_event("Network.loadingFinished", self._on_loading_finished)
        self.connector.off_event("Network.loadingFailed", self._on_loading_failed)
        self.connector.off_event("Page.frameNavigated", self._on_frame_navigated)
        self.connector.off_event("Page.loadEventFired", self._on_load_event_fired)
        self.connector.off_event("Page.frameRequestedNavigation", self._on_frame_requested_navigation)
        for task in list(self._pending_tasks):
            task.cancel()

    # Lifecycle transitions

    def navigation_started(self, url: str) -> None:
        self.load_error = None
        self._load_failed = False
        self._record("info", NAVIGATING_PREFIX + url)

    def navigation_finished(self, url: str) -> None:
        self._record("info", LOADED_PREFIX + url)

    def navigation_failed(self, description: str, provisional: bool = False,
                          cancelled: bool = False) -> bool:
        """Record a failure; cancelled navigations are ignored entirely."""
        if cancelled:
            logger.debug(f"Ignoring cancelled navigation: {description}")
            return False
        prefix = LOAD_FAILED_PREFIX if provisional else NAVIGATION_FAILED_PREFIX
        self._record("error", prefix + description)
        self.load_error = description
        self._load_failed = True
        self._fire_status("load_error", {"description": description, "provisional": provisional})
        return True

    def _record(self, level: str, message: str) -> None:
        self.store.append_console(level, message, kind=NAVIGATION_KIND)

    # CDP event adapters

    def _is_own(self, params: Dict[str, Any]) -> bool:
        return params.get("sessionId") == self.session_id

    def _is_main_frame(self, frame_id: Optional[str]) -> bool:
        return self.main_frame_id is None or frame_id == self.main_frame_id

    def _on_request_will_be_sent(self, params: Dict[str, Any]) -> None:
        if not self._is_own(params) or params.get("type") != "Document":
            return
        request_id = params.get("requestId")
        if request_id != params.get("loaderId") or not self._is_main_frame(params.get("frameId")):
            return
        # Redirect hops reuse the requestId and are part of the same navigation
        if "redirectResponse" in params and request_id in self._document_requests:
            return
        url = params.get("request", {}).get("url", "")
        self._document_requests[request_id] = url
        self.navigation_started(url)

    def _on_loading_finished(self, params: Dict[str, Any]) -> None:
        if self._is_own(params):
            self._forget(params.get("requestId"))

    def _on_loading_failed(self, params: Dict[str, Any]) -> None:
        if not self._is_own(params):
            return
        request_id = params.get("requestId")
        if request_id not in self._document_requests:
            return
        provisional = request_id not in self._committed
        self._forget(request_id)

        error_text = params.get("errorText") or "Unknown error"
        cancelled = bool(params.get("canceled")) or error_text in CANCELLED_ERRORS
        self.navigation_failed(error_text, provisional=provisional, cancelled=cancelled)

    def _on_frame_navigated(self, params: Dict[str, Any]) -> None:
        if not self._is_own(params):
            return
        frame = params.get("frame", {})
        if frame.get("parentId"):
            return
        self.main_frame_id = frame.get("id", self.main_frame_id)
        self.current_url = frame.get("url", "") + frame.get("urlFragment", "")
        loader_id = frame.get("loaderId")
        if loader_id in self._document_requests:
            self._committed.add(loader_id)

    def _on_load_event_fired(self, params: Dict[str, Any]) -> None:
        if not self._is_own(params):
            return
        if self._load_failed or url_scheme(self.current_url) == ERROR_PAGE_SCHEME:
            logger.debug(f"Load event for error page {self.current_url} ignored")
            return
        self.navigation_finished(self.current_url)

    async def _on_frame_requested_navigation(self, params: Dict[str, Any]) -> None:
        if not self._is_own(params) or not self._is_main_frame(params.get("frameId")):
            return
        url = params.get("url", "")
        if self.policy.allows(url):
            return
        # Handlers run on the connector's reader; awaiting a command reply here
        # would stall it until the call times out.
        task = asyncio.create_task(self._hand_off_and_stop(url))
        self._pending_tasks.add(task)
        task.add_done_callback(self._collect_task)

    async def _hand_off_and_stop(self, url: str) -> None:
        logger.info(f"Handing {url} to the default handler")
        await asyncio.to_thread(self.policy.hand_off, url)
        try:
            await self.connector.call("Page.stopLoading", session_id=self.session_id)
        except Exception as e:
            logger.debug(f"Page.stopLoading failed: {e}")

    def _collect_task(self, task: asyncio.Task) -> None:
        self._pending_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.warning(f"External hand-off failed: {task.exception()}")

    def _forget(self, request_id: Optional[str]) -> None:
        self._document_requests.pop(request_id, None)
        self._committed.discard(request_id)

    def _fire_status(self, event_type: str, payload: Dict[str, Any]) -> None:
        if not self.status_callback:
            return
        try:
            self.status_callback(event_type, payload)
        except Exception as e:
            logger.warning(f"Error in navigation status callback: {e}")
