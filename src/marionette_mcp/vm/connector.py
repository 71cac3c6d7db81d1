"""VM service connector - connection lifecycle and marionette extension calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .client import VmServiceClient
from .errors import (
    ConnectionFailedError,
    ExtensionCallError,
    NotConnectedError,
    RPCError,
)
from .protocol import (
    EXTENSION_PREFIX,
    ErrorCodes,
    EventKinds,
    StreamEvent,
    Streams,
    to_wire_name,
)

logger = logging.getLogger(__name__)

# Isolates exposing this extension run the marionette binding
LIVENESS_EXTENSION = "marionette.getLogs"

# Service registered by development tooling to perform a full hot reload
RELOAD_SERVICE = "reloadSources"

DEFAULT_SERVICE_WAIT_TIMEOUT = 1.0


class ConnectionState(str, Enum):
    """Connector lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCOVERING = "discovering"  # Looking for the isolate with our extensions
    CONNECTED = "connected"


@dataclass
class HotReloadResult:
    """Outcome of a hot reload request."""
    success: bool
    via: str  # "service" or "vm"
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "via": self.via, "details": self.details}


class VmServiceConnector:
    """Manages the connection to an app's VM service and wraps the
    marionette.* extensions."""

    def __init__(
        self,
        client_factory: Callable[..., VmServiceClient] = VmServiceClient,
        request_timeout: float | None = None,
        service_wait_timeout: float = DEFAULT_SERVICE_WAIT_TIMEOUT,
    ):
        self._client_factory = client_factory
        self._request_timeout = request_timeout
        self.service_wait_timeout = service_wait_timeout
        self._client: VmServiceClient | None = None
        self._isolate_id: str | None = None
        self._state = ConnectionState.DISCONNECTED
        self._services: dict[str, str] = {}  # service -> method alias
        self._service_waiters: dict[str, list[asyncio.Future[str | None]]] = {}
        self._uri: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True once an isolate with the marionette extensions was selected."""
        return (
            self._state == ConnectionState.CONNECTED
            and self._client is not None
            and self._client.is_connected
            and self._isolate_id is not None
        )

    @property
    def isolate_id(self) -> str | None:
        return self._isolate_id

    @property
    def uri(self) -> str | None:
        return self._uri

    @property
    def registered_services(self) -> dict[str, str]:
        """Services announced on the Service stream, by name."""
        return dict(self._services)

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"Connection state: {old_state.value} -> {new_state.value}")

    async def connect(self, uri: str) -> None:
        """Connect to the VM service at ``uri`` and select the marionette isolate.

        Raises:
            ConnectionFailedError: If the transport cannot be opened or no
                isolate has the marionette extensions.
        """
        if self._state != ConnectionState.DISCONNECTED:
            logger.warning("Already connected, disconnecting first")
            await self.disconnect()

        logger.info(f"Connecting to VM service at {uri}")
        self._set_state(ConnectionState.CONNECTING)

        client = self._client_factory(uri, request_timeout=self._request_timeout)
        self._client = client
        try:
            await client.connect()
        except Exception as e:
            logger.error(f"Failed to open VM service connection: {e}")
            await self._release()
            raise ConnectionFailedError(f"Failed to connect to VM service at {uri}: {e}") from e

        try:
            client.on_event(Streams.SERVICE, self._on_service_event)
            await self._listen(Streams.SERVICE)

            self._set_state(ConnectionState.DISCOVERING)
            self._isolate_id = await self._find_marionette_isolate()
        except Exception as e:
            logger.error(f"Failed to connect to VM service: {e}")
            await self._release()
            if isinstance(e, ConnectionFailedError):
                raise
            raise ConnectionFailedError(f"Failed to connect to VM service at {uri}: {e}") from e

        self._uri = uri
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"Connected to isolate: {self._isolate_id}")

    async def disconnect(self) -> None:
        """Disconnect from the VM service. Safe to call when not connected."""
        if self._client is None and self._state == ConnectionState.DISCONNECTED:
            return

        logger.info("Disconnecting from VM service")
        client = self._client
        if client is not None and client.is_connected:
            try:
                await client.stream_cancel(Streams.SERVICE)
            except Exception as e:
                logger.debug(f"Could not cancel Service stream: {e}")
        await self._release()
        logger.debug("Disconnected")

    async def _release(self) -> None:
        """Drop all connection state, closing the transport."""
        client = self._client
        self._client = None
        self._isolate_id = None
        self._uri = None
        self._services.clear()

        waiters = self._service_waiters
        self._service_waiters = {}
        for futures in waiters.values():
            for future in futures:
                if not future.done():
                    future.set_result(None)

        if client is not None:
            client.off_event(Streams.SERVICE, self._on_service_event)
            await client.close()

        self._set_state(ConnectionState.DISCONNECTED)

    async def _listen(self, stream_id: str) -> None:
        assert self._client is not None
        try:
            await self._client.stream_listen(stream_id)
        except RPCError as e:
            if e.code != ErrorCodes.STREAM_ALREADY_SUBSCRIBED:
                raise
            logger.debug(f"Stream {stream_id} already subscribed")

    async def _find_marionette_isolate(self) -> str:
        """Return the id of the first isolate exposing the liveness extension."""
        assert self._client is not None
        vm = await self._client.get_vm()
        isolates = vm.get("isolates") or []
        if not isolates:
            raise ConnectionFailedError("No isolates found in the VM")

        marker = to_wire_name(LIVENESS_EXTENSION)
        for isolate_ref in isolates:
            isolate_id = isolate_ref.get("id")
            if not isolate_id:
                continue

            try:
                isolate = await self._client.get_isolate(isolate_id)
            except Exception as e:
                logger.warning(f"Failed to check extensions for isolate {isolate_id}: {e}")
                continue

            if marker in (isolate.get("extensionRPCs") or []):
                return isolate_id

        raise ConnectionFailedError(
            f"No isolate found with {marker} extension. "
            "Make sure the app has the marionette binding initialized."
        )

    def _on_service_event(self, event: StreamEvent) -> None:
        """Track services registered by other VM service clients."""
        service = event.data.get("service")
        if not service:
            return

        if event.kind == EventKinds.SERVICE_REGISTERED:
            method = event.data.get("method", service)
            self._services[service] = method
            logger.debug(f"Service registered: {service} -> {method}")
            for future in self._service_waiters.pop(service, []):
                if not future.done():
                    future.set_result(method)
        elif event.kind == EventKinds.SERVICE_UNREGISTERED:
            self._services.pop(service, None)
            logger.debug(f"Service unregistered: {service}")

    async def wait_for_service(
        self, service: str, timeout: float | None = None
    ) -> str | None:
        """Wait for ``service`` to be registered.

        Returns:
            The method alias to call the service with, or None if it was not
            registered within ``timeout`` seconds.
        """
        method = self._services.get(service)
        if method is not None:
            return method

        timeout = self.service_wait_timeout if timeout is None else timeout
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        waiters = self._service_waiters.setdefault(service, [])
        waiters.append(future)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Service {service} not registered after {timeout}s")
            return None
        finally:
            remaining = self._service_waiters.get(service)
            if remaining is not None:
                if future in remaining:
                    remaining.remove(future)
                if not remaining:
                    del self._service_waiters[service]

    def _ensure_connected(self) -> VmServiceClient:
        if not self.is_connected:
            raise NotConnectedError()
        assert self._client is not None
        return self._client

    async def call_extension(
        self, name: str, args: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Call the ``ext.flutter.<name>`` extension on the selected isolate.

        Raises:
            NotConnectedError: If not connected.
            ExtensionCallError: If the extension reports a fault.
        """
        client = self._ensure_connected()
        args = args or {}
        logger.debug(f"Calling extension: {name} with args: {args}")

        try:
            response = await client.call_service_extension(
                to_wire_name(name), isolate_id=self._isolate_id, args=args
            )
        except RPCError as e:
            logger.error(f"Error calling extension {name}: {e}")
            raise ExtensionCallError(
                f"Extension {name} failed",
                code=e.code,
                details=e.details or e.message,
            ) from e

        if response.get("type") == "Error":
            logger.error(f"Extension {name} returned an error response")
            raise ExtensionCallError(
                f"Extension {name} failed",
                details=response.get("error"),
                stack_trace=response.get("stackTrace"),
            )

        logger.debug(f"Extension response: {response}")
        return response

    async def call_custom_extension(
        self, name: str, args: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Call an app-registered extension by its unprefixed name.

        Raises:
            ValueError: If the name is empty or carries the reserved prefix.
            NotConnectedError: If not connected.
        """
        if not name:
            raise ValueError("Extension name must not be empty")
        if name.startswith(EXTENSION_PREFIX):
            raise ValueError(
                f'Extension name must not include the "{EXTENSION_PREFIX}" prefix: {name}'
            )
        return await self.call_extension(name, args)

    async def hot_reload(self) -> HotReloadResult:
        """Hot reload the app.

        Prefers the reloadSources service registered by development tooling
        and falls back to the VM's own reloadSources.
        """
        client = self._ensure_connected()

        method = await self.wait_for_service(RELOAD_SERVICE)
        if method is not None:
            logger.info(f"Hot reloading via registered service {method}")
            try:
                result = await client.call_service_extension(
                    method, isolate_id=self._isolate_id
                )
            except RPCError as e:
                raise ExtensionCallError(
                    "Hot reload failed", code=e.code, details=e.details or e.message
                ) from e
            return HotReloadResult(
                success=result.get("type") == "Success",
                via="service",
                details=result,
            )

        logger.info("No reload service registered, using VM reloadSources")
        try:
            report = await client.reload_sources(self._isolate_id)
        except RPCError as e:
            raise ExtensionCallError(
                "Hot reload failed", code=e.code, details=e.details or e.message
            ) from e
        return HotReloadResult(
            success=bool(report.get("success")),
            via="vm",
            details=report,
        )

    # Typed wrappers for the marionette.* extensions

    async def get_version(self) -> dict[str, Any]:
        return await self.call_extension("marionette.getVersion")

    async def get_interactive_elements(self) -> dict[str, Any]:
        """List interactive elements in the app's UI tree."""
        return await self.call_extension("marionette.interactiveElements")

    async def tap_element(self, matcher: dict[str, Any]) -> dict[str, Any]:
        """Tap the element matching ``matcher`` (key, text, type or x/y)."""
        return await self.call_extension("marionette.tap", matcher)

    async def enter_text(self, matcher: dict[str, Any], input: str) -> dict[str, Any]:
        """Enter ``input`` into the text field matching ``matcher``."""
        args = dict(matcher)
        args["input"] = input
        return await self.call_extension("marionette.enterText", args)

    async def scroll_to_element(self, matcher: dict[str, Any]) -> dict[str, Any]:
        """Scroll until the element matching ``matcher`` is visible."""
        return await self.call_extension("marionette.scrollTo", matcher)

    async def get_logs(self) -> dict[str, Any]:
        return await self.call_extension("marionette.getLogs")

    async def take_screenshots(self) -> dict[str, Any]:
        """Base64-encoded PNG screenshots, one per view."""
        return await self.call_extension("marionette.takeScreenshots")

    async def list_custom_extensions(self) -> dict[str, Any]:
        return await self.call_extension("marionette.listCustomExtensions")
