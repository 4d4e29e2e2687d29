"""Page-to-host message bridge."""

from .messages import (
    ConsoleMessage,
    NetworkMessage,
    console_message_from_payload,
    network_message_from_payload,
    parse_payload,
)
from .receiver import BridgeReceiver

__all__ = [
    "BridgeReceiver",
    "ConsoleMessage",
    "NetworkMessage",
    "console_message_from_payload",
    "network_message_from_payload",
    "parse_payload",
]
