"""Tests for the navigation observer and scheme policy."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tapspect.core.connector import ChromeConnector
from tapspect.monitors.navigation import (
    NavigationObserver,
    NavigationPolicy,
    url_scheme,
)
from tapspect.store.event_store import EventStore


@pytest.fixture
def connector():
    connector = MagicMock(spec=ChromeConnector)
    connector.call = AsyncMock(return_value={})
    return connector


@pytest.fixture
def store():
    return EventStore()


@pytest.fixture
def observer(connector, store):
    observer = NavigationObserver(connector, "session-1", store)
    observer.main_frame_id = "frame-main"
    return observer


def document_request(url, request_id="loader-1", frame_id="frame-main", **extra):
    params = {
        "sessionId": "session-1",
        "requestId": request_id,
        "loaderId": request_id,
        "frameId": frame_id,
        "type": "Document",
        "request": {"url": url, "method": "GET"},
    }
    params.update(extra)
    return params


def frame_navigated(url, loader_id="loader-1", frame_id="frame-main"):
    return {
        "sessionId": "session-1",
        "frame": {"id": frame_id, "loaderId": loader_id, "url": url},
    }


class FakeWebSocket:
    """In-memory CDP peer: answers every command at once, events are pushed by the test."""

    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        await self.incoming.put(json.dumps({"id": message["id"], "result": {}}))

    async def push_event(self, method, params, session_id="session-1"):
        await self.incoming.put(json.dumps({"method": method, "params": params, "sessionId": session_id}))

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.incoming.get()

    async def close(self):
        pass


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestLifecycleTransitions:

    def test_started_then_finished(self, observer, store):
        observer.navigation_started("https://example.com/")
        observer.navigation_finished("https://example.com/")

        entries = store.console_entries
        assert [(e.level, e.message) for e in entries] == [
            ("info", "⇢ Navigating to: https://example.com/"),
            ("info", "✓ Loaded: https://example.com/"),
        ]

    def test_failure_sets_load_error(self, observer, store):
        assert observer.navigation_failed("net::ERR_NAME_NOT_RESOLVED")

        entry = store.console_entries[-1]
        assert entry.level == "error"
        assert entry.message == "✗ Navigation failed: net::ERR_NAME_NOT_RESOLVED"
        assert observer.load_error == "net::ERR_NAME_NOT_RESOLVED"
        assert store.error_count == 1

    def test_provisional_failure_message(self, observer, store):
        observer.navigation_failed("net::ERR_CONNECTION_REFUSED", provisional=True)
        assert store.console_entries[-1].message == "✗ Failed to load: net::ERR_CONNECTION_REFUSED"

    def test_cancelled_failure_is_ignored(self, observer, store):
        assert not observer.navigation_failed("net::ERR_ABORTED", cancelled=True)

        assert store.console_entries == ()
        assert store.error_count == 0
        assert observer.load_error is None

    def test_start_clears_load_error(self, observer):
        observer.navigation_failed("net::ERR_TIMED_OUT")
        observer.navigation_started("https://example.com/")
        assert observer.load_error is None

    def test_status_callback_on_failure(self, connector, store):
        callback = MagicMock()
        observer = NavigationObserver(connector, "session-1", store, status_callback=callback)

        observer.navigation_failed("net::ERR_TIMED_OUT", provisional=True)

        callback.assert_called_once_with(
            "load_error", {"description": "net::ERR_TIMED_OUT", "provisional": True}
        )


class TestEventAdapters:

    def test_successful_load(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://example.com/"))
        observer._on_frame_navigated(frame_navigated("https://example.com/"))
        observer._on_loading_finished({"sessionId": "session-1", "requestId": "loader-1"})
        observer._on_load_event_fired({"sessionId": "session-1", "timestamp": 1.0})

        assert [e.message for e in store.console_entries] == [
            "⇢ Navigating to: https://example.com/",
            "✓ Loaded: https://example.com/",
        ]
        assert observer.current_url == "https://example.com/"

    def test_failure_before_commit_is_provisional(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://nowhere.invalid/"))
        observer._on_loading_failed({
            "sessionId": "session-1", "requestId": "loader-1",
            "errorText": "net::ERR_NAME_NOT_RESOLVED", "canceled": False
        })

        last = store.console_entries[-1]
        assert last.message == "✗ Failed to load: net::ERR_NAME_NOT_RESOLVED"
        assert observer.load_error == "net::ERR_NAME_NOT_RESOLVED"

    def test_error_page_after_failure_is_not_a_load(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://nowhere.invalid/"))
        observer._on_loading_failed({
            "sessionId": "session-1", "requestId": "loader-1",
            "errorText": "net::ERR_NAME_NOT_RESOLVED"
        })
        observer._on_frame_navigated(frame_navigated("chrome-error://chromewebdata/", loader_id="loader-err"))
        observer._on_load_event_fired({"sessionId": "session-1", "timestamp": 2.0})

        assert [(e.level, e.message) for e in store.console_entries] == [
            ("info", "⇢ Navigating to: https://nowhere.invalid/"),
            ("error", "✗ Failed to load: net::ERR_NAME_NOT_RESOLVED"),
        ]

    def test_next_navigation_loads_after_failure(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://nowhere.invalid/"))
        observer._on_loading_failed({
            "sessionId": "session-1", "requestId": "loader-1", "errorText": "net::ERR_TIMED_OUT"
        })
        observer._on_request_will_be_sent(document_request("https://example.com/", request_id="loader-2"))
        observer._on_frame_navigated(frame_navigated("https://example.com/", loader_id="loader-2"))
        observer._on_load_event_fired({"sessionId": "session-1"})

        assert store.console_entries[-1].message == "✓ Loaded: https://example.com/"

    def test_lifecycle_lines_use_navigation_kind(self, connector):
        kinds = []
        store = EventStore(change_callback=lambda kind, entry: kinds.append(kind))
        observer = NavigationObserver(connector, "session-1", store)

        observer.navigation_started("https://example.com/")
        observer.navigation_failed("net::ERR_FAILED")
        store.append_console("log", "✓ Loaded: spoofed by the page")

        assert kinds == ["navigation", "navigation", "console"]

    def test_failure_after_commit(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://example.com/"))
        observer._on_frame_navigated(frame_navigated("https://example.com/"))
        observer._on_loading_failed({
            "sessionId": "session-1", "requestId": "loader-1",
            "errorText": "net::ERR_CONNECTION_RESET"
        })

        assert store.console_entries[-1].message == "✗ Navigation failed: net::ERR_CONNECTION_RESET"

    @pytest.mark.parametrize("failure", [
        {"errorText": "net::ERR_ABORTED"},
        {"errorText": "net::ERR_FAILED", "canceled": True},
    ])
    def test_cancelled_navigation_adds_nothing(self, observer, store, failure):
        observer._on_request_will_be_sent(document_request("https://example.com/slow"))
        before = store.console_entries

        observer._on_loading_failed({"sessionId": "session-1", "requestId": "loader-1", **failure})

        assert store.console_entries == before
        assert store.error_count == 0
        assert observer.load_error is None

    def test_subresource_failures_are_ignored(self, observer, store):
        observer._on_loading_failed({
            "sessionId": "session-1", "requestId": "req-42", "errorText": "net::ERR_FAILED"
        })
        assert store.console_entries == ()

    def test_subframe_and_subresource_requests_are_ignored(self, observer, store):
        observer._on_request_will_be_sent(document_request("https://ads.example.com/", frame_id="frame-child"))
        observer._on_request_will_be_sent({
            **document_request("https://example.com/app.js"), "type": "Script"
        })
        observer._on_request_will_be_sent({
            **document_request("https://example.com/"), "loaderId": "other-loader"
        })
        assert store.console_entries == ()

    def test_other_session_is_ignored(self, observer, store):
        params = document_request("https://example.com/")
        params["sessionId"] = "session-2"
        observer._on_request_will_be_sent(params)
        observer._on_load_event_fired({"sessionId": "session-2"})
        assert store.console_entries == ()

    def test_redirect_hop_is_not_a_new_navigation(self, observer, store):
        observer._on_request_will_be_sent(document_request("http://example.com/"))
        observer._on_request_will_be_sent(
            document_request("https://example.com/", redirectResponse={"status": 301})
        )
        assert len(store.console_entries) == 1

    def test_fragment_is_part_of_current_url(self, observer):
        params = frame_navigated("https://example.com/page")
        params["frame"]["urlFragment"] = "#top"
        observer._on_frame_navigated(params)
        assert observer.current_url == "https://example.com/page#top"

    def test_child_frame_navigation_is_ignored(self, observer):
        params = frame_navigated("https://ads.example.com/", frame_id="frame-child")
        params["frame"]["parentId"] = "frame-main"
        observer._on_frame_navigated(params)
        assert observer.current_url == ""


@pytest.mark.asyncio
class TestMonitoring:

    async def test_start_reads_frame_tree(self, observer, connector):
        connector.call.return_value = {
            "frameTree": {"frame": {"id": "frame-xyz", "url": "about:blank"}}
        }

        await observer.start_monitoring()

        assert observer.main_frame_id == "frame-xyz"
        assert observer.current_url == "about:blank"
        registered = [c.args[0] for c in connector.on_event.call_args_list]
        assert "Network.loadingFailed" in registered
        assert "Page.loadEventFired" in registered
        assert "Page.frameRequestedNavigation" in registered

    async def test_stop_unregisters_handlers(self, observer, connector):
        await observer.start_monitoring()
        await observer.stop_monitoring()
        assert connector.off_event.call_count == connector.on_event.call_count

    async def test_foreign_scheme_is_handed_off(self, connector, store):
        opener = MagicMock(return_value=True)
        observer = NavigationObserver(connector, "session-1", store, policy=NavigationPolicy(opener))

        await observer._on_frame_requested_navigation({
            "sessionId": "session-1", "frameId": "frame-main", "url": "tel:+15551234"
        })
        await asyncio.gather(*list(observer._pending_tasks))

        opener.assert_called_once_with("tel:+15551234")
        connector.call.assert_awaited_once_with("Page.stopLoading", session_id="session-1")
        assert not observer._pending_tasks

    async def test_hand_off_does_not_stall_event_reader(self, store):
        """The reader must stay free to deliver the stopLoading reply and later events."""
        websocket = FakeWebSocket()
        connector = ChromeConnector()
        connector.call_timeout = 2.0
        connector.websocket = websocket
        connector.message_task = asyncio.create_task(connector._handle_messages())

        opener = MagicMock(return_value=True)
        observer = NavigationObserver(connector, "session-1", store, policy=NavigationPolicy(opener))
        observer.main_frame_id = "frame-main"
        connector.on_event("Page.frameRequestedNavigation", observer._on_frame_requested_navigation)
        connector.on_event("Page.loadEventFired", observer._on_load_event_fired)

        try:
            await websocket.push_event("Page.frameRequestedNavigation",
                                       {"frameId": "frame-main", "url": "mailto:a@example.com"})
            await wait_until(lambda: websocket.sent and not observer._pending_tasks)

            assert [m["method"] for m in websocket.sent] == ["Page.stopLoading"]
            assert connector.pending_requests == {}
            opener.assert_called_once_with("mailto:a@example.com")

            await websocket.push_event("Page.loadEventFired", {"timestamp": 1.0})
            await wait_until(lambda: store.console_entries)
            assert store.console_entries[-1].message.startswith("✓ Loaded: ")
        finally:
            await connector.disconnect()

    async def test_web_scheme_stays_in_page(self, connector, store):
        opener = MagicMock()
        observer = NavigationObserver(connector, "session-1", store, policy=NavigationPolicy(opener))

        await observer._on_frame_requested_navigation({
            "sessionId": "session-1", "frameId": "frame-main", "url": "https://example.com/next"
        })

        opener.assert_not_called()
        connector.call.assert_not_awaited()


class TestNavigationPolicy:

    @pytest.mark.parametrize("url", [
        "http://example.com", "https://example.com/a?b=c", "about:blank",
        "blob:https://example.com/1234", "data:text/html,hi", "HTTPS://EXAMPLE.COM",
    ])
    def test_surface_schemes_are_allowed(self, url):
        assert NavigationPolicy(opener=MagicMock()).allows(url)

    @pytest.mark.parametrize("url", [
        "tel:+15551234", "mailto:someone@example.com", "itms-apps://app/123",
        "javascript:alert(1)", "file:///etc/hosts", "",
    ])
    def test_other_schemes_are_handed_off(self, url):
        assert not NavigationPolicy(opener=MagicMock()).allows(url)

    def test_hand_off_uses_opener(self):
        opener = MagicMock(return_value=True)
        assert NavigationPolicy(opener).hand_off("mailto:a@example.com")
        opener.assert_called_once_with("mailto:a@example.com")

    def test_hand_off_failure_returns_false(self):
        opener = MagicMock(side_effect=OSError("no handler"))
        assert not NavigationPolicy(opener).hand_off("tel:1")

    def test_default_opener_is_webbrowser(self):
        with patch("webbrowser.open", return_value=False) as mock_open:
            policy = NavigationPolicy()
            assert not policy.hand_off("mailto:a@example.com")
        mock_open.assert_called_once_with("mailto:a@example.com")

    def test_url_scheme(self):
        assert url_scheme("HTTPS://example.com") == "https"
        assert url_scheme("no-scheme") == ""
