"""Install the instrumentation script into a page session and undo it later."""

import logging
from typing import Optional

from ..core.connector import ChromeConnector
from .script import CHANNELS, INSTRUMENTATION_SCRIPT, RESTORE_FUNCTION

logger = logging.getLogger(__name__)


class InstrumentationError(Exception):
    """Instrumentation could not be installed into the page."""
    pass


class InstrumentationHandle:
    """Restoration handle returned by :func:`install_instrumentation`."""

    def __init__(self, connector: ChromeConnector, session_id: str,
                 script_identifier: Optional[str]):
        self.connector = connector
        self.session_id = session_id
        self.script_identifier = script_identifier
        self.active = True

    async def remove(self) -> None:
        """Stop instrumenting new documents and restore the current one.

        Each step is attempted independently; the page may already be gone.
        """
        if not self.active:
            return
        self.active = False

        if self.script_identifier:
            try:
                await self.connector.call(
                    "Page.removeScriptToEvaluateOnNewDocument",
                    {"identifier": self.script_identifier},
                    session_id=self.session_id,
                    timeout=3.0
                )
            except Exception as e:
                logger.debug(f"Failed to remove new-document script: {e}")

        try:
            await self.connector.call(
                "Runtime.evaluate",
                {
                    "expression": f"window.{RESTORE_FUNCTION} && window.{RESTORE_FUNCTION}()",
                    "returnByValue": True
                },
                session_id=self.session_id,
                timeout=3.0
            )
        except Exception as e:
            logger.debug(f"Failed to restore page globals: {e}")

        for channel in CHANNELS:
            try:
                await self.connector.call(
                    "Runtime.removeBinding",
                    {"name": channel},
                    session_id=self.session_id,
                    timeout=3.0
                )
            except Exception as e:
                logger.debug(f"Failed to remove binding {channel}: {e}")

        logger.info(f"Instrumentation removed from session {self.session_id}")


async def install_instrumentation(connector: ChromeConnector, session_id: str,
                                  script: str = INSTRUMENTATION_SCRIPT) -> InstrumentationHandle:
    """Register the bridge bindings and inject the script.

    Bindings are added first so that the very first document created after
    this call can already post messages. The script is also evaluated once in
    the current document; its install flag keeps that from double wrapping.
    """
    try:
        await connector.call("Runtime.enable", session_id=session_id)
        await connector.call("Page.enable", session_id=session_id)
        for channel in CHANNELS:
            await connector.call("Runtime.addBinding", {"name": channel}, session_id=session_id)

        response = await connector.call(
            "Page.addScriptToEvaluateOnNewDocument",
            {"source": script},
            session_id=session_id,
            timeout=10.0
        )
    except Exception as e:
        raise InstrumentationError(f"Failed to install instrumentation: {e}")

    handle = InstrumentationHandle(connector, session_id, response.get("identifier"))

    try:
        await connector.call(
            "Runtime.evaluate",
            {"expression": script, "returnByValue": False},
            session_id=session_id,
            timeout=10.0
        )
    except Exception as e:
        # New documents are still covered by the new-document script
        logger.debug(f"Immediate evaluation in current document failed: {e}")

    logger.info(f"Instrumentation installed for session {session_id}")
    return handle
