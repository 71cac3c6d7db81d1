"""VM service client - JSON-RPC over a WebSocket connection."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from .errors import RPCError
from .protocol import (
    Methods,
    RPCRequest,
    RPCResponse,
    StreamEvent,
    parse_message,
)

logger = logging.getLogger(__name__)

# Limits for security
MAX_MESSAGE_SIZE = 64 * 1024 * 1024  # screenshots travel as base64

DEFAULT_REQUEST_TIMEOUT = 30.0


def default_request_timeout() -> float:
    """Request timeout from MARIONETTE_REQUEST_TIMEOUT, in seconds."""
    raw = os.environ.get("MARIONETTE_REQUEST_TIMEOUT")
    if not raw:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid MARIONETTE_REQUEST_TIMEOUT: {raw!r}")
        return DEFAULT_REQUEST_TIMEOUT


class VmServiceClient:
    """Async client for a VM-service-style JSON-RPC endpoint."""

    def __init__(self, uri: str, request_timeout: float | None = None):
        self.uri = uri
        self.request_timeout = request_timeout or default_request_timeout()
        self._id = 0
        self._request_lock = asyncio.Lock()  # Protect request id
        self._pending: dict[str, asyncio.Future[RPCResponse]] = {}
        self._event_handlers: dict[str, list[Callable[[StreamEvent], None]]] = {}
        self._ws: ClientConnection | None = None
        self._read_task: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the WebSocket is open and being read."""
        return (
            self._ws is not None
            and self._read_task is not None
            and not self._read_task.done()
        )

    async def connect(self) -> None:
        """Open the WebSocket connection and start the read loop."""
        if self.is_connected:
            return

        logger.info(f"Opening VM service connection: {self.uri}")
        self._ws = await connect(self.uri, max_size=MAX_MESSAGE_SIZE)
        self._read_task = asyncio.create_task(self._read_loop())
        logger.debug("VM service connection open")

    async def close(self) -> None:
        """Close the connection and fail any pending requests."""
        if self._read_task:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None

        if self._ws:
            try:
                await self._ws.close()
            except Exception:
                logger.debug("Failed to close WebSocket cleanly")
            self._ws = None

        # Cancel pending requests
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

        logger.info("VM service connection closed")

    def on_event(self, stream_id: str, handler: Callable[[StreamEvent], None]) -> None:
        """Register a handler for events on a stream."""
        if stream_id not in self._event_handlers:
            self._event_handlers[stream_id] = []
        self._event_handlers[stream_id].append(handler)

    def off_event(self, stream_id: str, handler: Callable[[StreamEvent], None]) -> None:
        """Unregister a stream event handler."""
        if stream_id in self._event_handlers:
            try:
                self._event_handlers[stream_id].remove(handler)
            except ValueError:
                pass  # Handler not registered

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> RPCResponse:
        """Send a request and wait for its response."""
        if not self.is_connected:
            raise ConnectionError("VM service client not connected")

        # Atomically increment id and register future
        async with self._request_lock:
            self._id += 1
            request_id = str(self._id)
            future: asyncio.Future[RPCResponse] = asyncio.get_running_loop().create_future()
            self._pending[request_id] = future

        request = RPCRequest(id=request_id, method=method, params=params or {})
        try:
            await self._send(request)
        except Exception:
            self._pending.pop(request_id, None)
            raise

        timeout = timeout or self.request_timeout
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._pending.pop(request_id, None)
            raise TimeoutError(f"Request {method} timed out after {timeout}s") from None

    async def call(
        self, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send a request and return its result, raising RPCError on faults."""
        response = await self.send_request(method, params)
        if not response.success:
            raise RPCError(
                method,
                response.error_code if response.error_code is not None else 0,
                response.error_message or "Unknown error",
                response.error_details,
            )
        return response.result or {}

    async def _send(self, request: RPCRequest) -> None:
        if self._ws is None:
            raise ConnectionError("VM service client not connected")

        logger.debug(f">>> {request.method}: {request.params}")
        await self._ws.send(request.to_json())

    async def _read_loop(self) -> None:
        """Read messages until the connection closes."""
        assert self._ws is not None

        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.warning(f"Discarding malformed message: {raw!r:.200}")
                    continue
                self._handle_message(data)
        except ConnectionClosed:
            logger.warning("VM service connection closed by peer")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error reading VM service message")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ConnectionError("VM service connection closed"))
            self._pending.clear()

    def _handle_message(self, data: dict[str, Any]) -> None:
        """Handle incoming message."""
        try:
            message = parse_message(data)

            if isinstance(message, RPCResponse):
                logger.debug(f"<<< Response {message.id}: success={message.success}")
                future = self._pending.pop(message.id, None)
                if future and not future.done():
                    future.set_result(message)

            elif isinstance(message, StreamEvent):
                logger.debug(f"<<< Event {message.stream_id}/{message.kind}: {message.data}")
                handlers = list(self._event_handlers.get(message.stream_id, []))
                for handler in handlers:
                    try:
                        handler(message)
                    except Exception:
                        logger.exception("Event handler error")

        except Exception:
            logger.exception(f"Error handling message, data: {data}")

    # High-level VM service methods

    async def get_vm(self) -> dict[str, Any]:
        """Describe the VM and its isolates."""
        return await self.call(Methods.GET_VM)

    async def get_isolate(self, isolate_id: str) -> dict[str, Any]:
        """Describe a single isolate, including its extension RPCs."""
        return await self.call(Methods.GET_ISOLATE, {"isolateId": isolate_id})

    async def stream_listen(self, stream_id: str) -> dict[str, Any]:
        """Subscribe to a stream."""
        return await self.call(Methods.STREAM_LISTEN, {"streamId": stream_id})

    async def stream_cancel(self, stream_id: str) -> dict[str, Any]:
        """Unsubscribe from a stream."""
        return await self.call(Methods.STREAM_CANCEL, {"streamId": stream_id})

    async def reload_sources(self, isolate_id: str) -> dict[str, Any]:
        """Ask the VM to reload the isolate's sources."""
        return await self.call(Methods.RELOAD_SOURCES, {"isolateId": isolate_id})

    async def call_service_extension(
        self,
        method: str,
        isolate_id: str | None = None,
        args: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Invoke a service extension (or registered service) by wire name."""
        params: dict[str, Any] = {
            key: value if isinstance(value, str) else json.dumps(value)
            for key, value in (args or {}).items()
        }
        if isolate_id is not None:
            params["isolateId"] = isolate_id
        return await self.call(method, params)
