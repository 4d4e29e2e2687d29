"""In-page instrumentation of console, fetch and XMLHttpRequest."""

from .installer import InstrumentationError, InstrumentationHandle, install_instrumentation
from .script import (
    CHANNELS,
    CONSOLE_CHANNEL,
    INSTRUMENTATION_SCRIPT,
    NETWORK_CHANNEL,
    REQUEST_BODY_LIMIT,
    RESPONSE_BODY_LIMIT,
    TRUNCATION_MARKER,
    truncate_body,
)

__all__ = [
    "CHANNELS",
    "CONSOLE_CHANNEL",
    "INSTRUMENTATION_SCRIPT",
    "NETWORK_CHANNEL",
    "REQUEST_BODY_LIMIT",
    "RESPONSE_BODY_LIMIT",
    "TRUNCATION_MARKER",
    "InstrumentationError",
    "InstrumentationHandle",
    "install_instrumentation",
    "truncate_body",
]
