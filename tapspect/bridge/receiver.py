"""Host end of the page-to-host bridge."""

import logging
from typing import Any, Dict

from ..core.connector import ChromeConnector
from ..instrument.script import CONSOLE_CHANNEL, NETWORK_CHANNEL
from ..store.event_store import EventStore
from .messages import console_message_from_payload, network_message_from_payload, parse_payload

logger = logging.getLogger(__name__)


class BridgeReceiver:
    """Turn ``Runtime.bindingCalled`` events of one session into store appends.

    Sends are fire-and-forget on the page side, so this side never answers.
    Payloads that are not JSON objects, unknown channel names and events from
    other sessions are dropped silently.
    """

    def __init__(self, connector: ChromeConnector, session_id: str, store: EventStore):
        self.connector = connector
        self.session_id = session_id
        self.store = store
        self.dropped_count = 0

    async def start(self) -> None:
        self.connector.on_event("Runtime.bindingCalled", self._on_binding_called)

    async def stop(self) -> None:
        self.connector.off_event("Runtime.bindingCalled", self._on_binding_called)

    def _on_binding_called(self, params: Dict[str, Any]) -> None:
        if params.get("sessionId") != self.session_id:
            return
        self.receive(params.get("name"), params.get("payload"))

    def receive(self, channel: Any, payload: Any) -> bool:
        """Deliver one raw message; returns whether an entry was stored."""
        if channel not in (CONSOLE_CHANNEL, NETWORK_CHANNEL):
            return False

        body = parse_payload(payload)
        if body is None:
            self.dropped_count += 1
            logger.debug(f"Dropping malformed {channel} message")
            return False

        if channel == CONSOLE_CHANNEL:
            message = console_message_from_payload(body)
            self.store.append_console(message.level, message.message)
        else:
            message = network_message_from_payload(body)
            self.store.append_network(
                method=message.method,
                url=message.url,
                status=message.status,
                duration=message.duration,
                request_headers=message.request_headers,
                request_body=message.request_body,
                response_headers=message.response_headers,
                response_body=message.response_body,
                response_content_type=message.response_content_type
            )
        return True
