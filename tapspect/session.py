"""Inspector session: one instrumented page target and its event store."""

import asyncio
import logging
from typing import Callable, Optional

from .bridge.receiver import BridgeReceiver
from .core.connector import ChromeConnector, ChromeConnectionError
from .instrument.installer import InstrumentationHandle, install_instrumentation
from .monitors.navigation import NavigationObserver, NavigationPolicy
from .store.event_store import EventStore

logger = logging.getLogger(__name__)


class InspectorSession:
    """Attach to a page, instrument it, and collect what it logs and fetches.

    The store is shared by the bridge receiver (page-originated events) and
    the navigation observer (host-originated events). All of them run on the
    connector's event loop.
    """

    def __init__(self, connector: ChromeConnector, target_id: str,
                 store: Optional[EventStore] = None,
                 policy: Optional[NavigationPolicy] = None,
                 status_callback: Optional[Callable] = None):
        self.connector = connector
        self.target_id = target_id
        self.store = store or EventStore()
        self.policy = policy or NavigationPolicy()
        self.status_callback = status_callback
        self.session_id: Optional[str] = None
        self.hosted_url: Optional[str] = None
        self.receiver: Optional[BridgeReceiver] = None
        self.navigation: Optional[NavigationObserver] = None
        self.instrumentation: Optional[InstrumentationHandle] = None

    @property
    def load_error(self) -> Optional[str]:
        return self.navigation.load_error if self.navigation else None

    async def attach(self) -> None:
        """Attach to the target and wire up bridge, observer and script."""
        last_err = None
        for attempt in range(3):
            try:
                response = await self.connector.call(
                    "Target.attachToTarget",
                    {"targetId": self.target_id, "flatten": True},
                    timeout=20.0
                )
                self.session_id = response["sessionId"]
                break
            except Exception as e:
                last_err = e
                await asyncio.sleep(0.3 * (attempt + 1))

        if not self.session_id:
            raise ChromeConnectionError(f"Failed to attach to target {self.target_id}: {last_err}")

        self.receiver = BridgeReceiver(self.connector, self.session_id, self.store)
        await self.receiver.start()

        await self.connector.call("Network.enable", session_id=self.session_id)
        self.navigation = NavigationObserver(
            self.connector, self.session_id, self.store,
            policy=self.policy, status_callback=self.status_callback
        )
        await self.navigation.start_monitoring()

        self.instrumentation = await install_instrumentation(self.connector, self.session_id)
        logger.debug(f"Attached to target {self.target_id} with session {self.session_id}")

    async def navigate(self, url: str) -> bool:
        """Load ``url`` in the page; returns False when it was handed off instead.

        A different URL starts a fresh capture, so both sequences are cleared.
        """
        if not self.session_id:
            raise ChromeConnectionError("Session is not attached")

        if not self.policy.allows(url):
            await asyncio.to_thread(self.policy.hand_off, url)
            return False

        if url != self.hosted_url:
            self.store.clear_all()
            if self.navigation:
                self.navigation.load_error = None
        self.hosted_url = url

        result = await self.connector.call("Page.navigate", {"url": url}, session_id=self.session_id)
        if result.get("errorText"):
            logger.debug(f"Page.navigate reported {result['errorText']} for {url}")
        return True

    def clear_console(self) -> None:
        self.store.clear_console()

    def clear_network(self) -> None:
        self.store.clear_network()

    async def close(self) -> None:
        """Undo instrumentation, stop listening and detach."""
        if self.instrumentation:
            await self.instrumentation.remove()
            self.instrumentation = None
        if self.navigation:
            await self.navigation.stop_monitoring()
        if self.receiver:
            await self.receiver.stop()

        if self.session_id:
            try:
                await self.connector.call("Target.detachFromTarget", {"sessionId": self.session_id})
            except Exception as e:
                logger.debug(f"Error detaching from target {self.target_id}: {e}")
            finally:
                self.session_id = None
