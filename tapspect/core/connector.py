"""Chrome DevTools Protocol connector."""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional
import httpx
import websockets
import websockets.exceptions


logger = logging.getLogger(__name__)


class ChromeConnectionError(Exception):
    """Chrome connection related errors."""
    pass


class ChromeConnector:
    """Browser-level CDP connection shared by every inspected page session."""

    def __init__(self, host: str = "127.0.0.1", port: int = 9222):
        self.host = host
        self.port = port
        self.websocket = None
        self.next_id = 1
        self.pending_requests: Dict[int, asyncio.Future] = {}
        self.event_handlers: Dict[str, List[Callable]] = {}
        self.message_task: Optional[asyncio.Task] = None
        self.connection_lost_callback: Optional[Callable] = None
        self.call_timeout: float = 10.0

    async def connect(self, retries: int = 3) -> None:
        """Connect to the browser endpoint, backing off between attempts."""
        last_exception = None

        for attempt in range(retries):
            try:
                ws_url = await self._discover_websocket_url()

                # Response bodies travel inside bridge payloads, allow large frames
                self.websocket = await asyncio.wait_for(
                    websockets.connect(
                        ws_url,
                        ping_interval=20,
                        ping_timeout=10,
                        max_size=64 * 1024 * 1024
                    ),
                    timeout=5.0
                )

                self.message_task = asyncio.create_task(self._handle_messages())
                logger.info(f"Connected to Chrome at {self.host}:{self.port}")
                return

            except ChromeConnectionError as e:
                last_exception = e
            except asyncio.TimeoutError:
                last_exception = ChromeConnectionError("WebSocket connection timed out")
            except Exception as e:
                last_exception = ChromeConnectionError(f"Failed to connect to WebSocket: {e}")

            if attempt < retries - 1:
                delay = 2 ** attempt
                logger.warning(f"Connection attempt {attempt + 1} failed, retrying in {delay}s...")
                await asyncio.sleep(delay)

        raise last_exception

    async def _discover_websocket_url(self) -> str:
        """Ask the debugging endpoint for the browser websocket URL."""
        url = f"http://{self.host}:{self.port}/json/version"

        try:
            async with httpx.AsyncClient(timeout=3.0) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError:
            raise ChromeConnectionError(
                f"Could not connect to Chrome on {self.host}:{self.port}. "
                f"Start Chrome with --remote-debugging-port={self.port} or use --launch"
            )
        except httpx.TimeoutException:
            raise ChromeConnectionError("Connection to Chrome timed out")
        except Exception as e:
            raise ChromeConnectionError(f"Failed to discover Chrome endpoint: {e}")

        if not isinstance(data, dict) or "webSocketDebuggerUrl" not in data:
            raise ChromeConnectionError("Chrome debugger endpoint missing WebSocket URL")

        return data["webSocketDebuggerUrl"]

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None,
                   session_id: Optional[str] = None,
                   timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send a CDP command and wait for its result."""
        if not self.websocket:
            raise ChromeConnectionError("Not connected to Chrome")

        request_id = self.next_id
        self.next_id += 1

        message: Dict[str, Any] = {"id": request_id, "method": method}
        if params:
            message["params"] = params
        if session_id:
            message["sessionId"] = session_id

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future

        try:
            await self.websocket.send(json.dumps(message))
            wait_timeout = timeout if timeout is not None else self.call_timeout
            return await asyncio.wait_for(future, timeout=wait_timeout)
        except asyncio.TimeoutError:
            self.pending_requests.pop(request_id, None)
            raise ChromeConnectionError(f"Timeout waiting for response to {method}")
        except ChromeConnectionError:
            self.pending_requests.pop(request_id, None)
            raise
        except Exception as e:
            self.pending_requests.pop(request_id, None)
            raise ChromeConnectionError(f"Error calling {method}: {e}")

    async def _handle_messages(self) -> None:
        """Route command results to their futures and events to handlers."""
        try:
            async for raw in self.websocket:
                try:
                    await self._process_message(json.loads(raw))
                except json.JSONDecodeError:
                    logger.warning("Received invalid JSON message")
                except Exception as e:
                    logger.warning(f"Error handling message: {e}")
        except websockets.exceptions.ConnectionClosed:
            logger.info("WebSocket connection closed")
            await self._notify_connection_lost()
        except Exception as e:
            logger.error(f"Error in message handler: {e}")
            await self._notify_connection_lost()

    async def _process_message(self, data: Dict[str, Any]) -> None:
        if "id" in data:
            future = self.pending_requests.pop(data["id"], None)
            if future and not future.done():
                if "error" in data:
                    error_msg = data["error"].get("message", "Unknown error")
                    future.set_exception(ChromeConnectionError(error_msg))
                else:
                    future.set_result(data.get("result", {}))
        elif "method" in data:
            params = dict(data.get("params") or {})
            # Flattened sessions: handlers filter on params["sessionId"]
            if "sessionId" in data:
                params["sessionId"] = data["sessionId"]
            await self._dispatch_event(data["method"], params)

    async def _notify_connection_lost(self) -> None:
        if not self.connection_lost_callback:
            return
        try:
            if asyncio.iscoroutinefunction(self.connection_lost_callback):
                await self.connection_lost_callback()
            else:
                self.connection_lost_callback()
        except Exception as e:
            logger.warning(f"Error in connection lost callback: {e}")

    async def disconnect(self) -> None:
        """Stop the reader task, close the socket and fail pending calls."""
        if self.message_task:
            self.message_task.cancel()
            try:
                await self.message_task
            except asyncio.CancelledError:
                pass
            self.message_task = None

        if self.websocket:
            await self.websocket.close()
            self.websocket = None

        for future in self.pending_requests.values():
            if not future.done():
                future.cancel()
        self.pending_requests.clear()

    async def get_browser_version(self) -> Dict[str, Any]:
        return await self.call("Browser.getVersion")

    async def get_targets(self) -> Dict[str, Any]:
        return await self.call("Target.getTargets")

    def filter_page_targets(self, targets_response: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Keep only page targets."""
        target_infos = targets_response.get("targetInfos", [])
        return [target for target in target_infos if target.get("type") == "page"]

    async def create_page(self, url: str = "about:blank") -> str:
        """Open a new page target and return its targetId."""
        response = await self.call("Target.createTarget", {"url": url})
        return response["targetId"]

    def on_event(self, method: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        """Register an event handler for a CDP event name."""
        self.event_handlers.setdefault(method, []).append(handler)

    def off_event(self, method: str, handler: Optional[Callable] = None) -> None:
        """Unregister one handler, or all handlers when none is given."""
        if method not in self.event_handlers:
            return
        if handler:
            try:
                self.event_handlers[method].remove(handler)
            except ValueError:
                pass
        else:
            self.event_handlers[method].clear()

    def set_connection_lost_callback(self, callback: Optional[Callable] = None) -> None:
        self.connection_lost_callback = callback

    async def _dispatch_event(self, method: str, params: Dict[str, Any]) -> None:
        """Run every handler for an event; a failing handler never stops the rest."""
        handlers = list(self.event_handlers.get(method, ()))
        if not handlers:
            return
        logger.debug(f"Dispatching {method} to {len(handlers)} handlers")
        for handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(params)
                else:
                    handler(params)
            except Exception as e:
                logger.warning(f"Error in event handler for {method}: {e}")
