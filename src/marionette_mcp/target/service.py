"""In-process VM service endpoint exposing an app's extensions over WebSocket."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed

from ..vm.client import MAX_MESSAGE_SIZE
from ..vm.protocol import (
    EXTENSION_PREFIX,
    ErrorCodes,
    EventKinds,
    Methods,
    RPCRequest,
    RPCResponse,
    StreamEvent,
    Streams,
)
from .extensions import ExtensionRegistry

if TYPE_CHECKING:
    from .binding import MarionetteBinding

logger = logging.getLogger(__name__)

ServiceHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

ERROR_MESSAGES = {
    ErrorCodes.PARSE_ERROR: "Parse error",
    ErrorCodes.METHOD_NOT_FOUND: "Method not found",
    ErrorCodes.INVALID_PARAMS: "Invalid params",
    ErrorCodes.INTERNAL_ERROR: "Internal error",
    ErrorCodes.STREAM_ALREADY_SUBSCRIBED: "Stream already subscribed",
    ErrorCodes.STREAM_NOT_SUBSCRIBED: "Stream not subscribed",
}


def _error_message(code: int) -> str:
    return ERROR_MESSAGES.get(code, "Server error")


@dataclass
class ServiceIsolate:
    """An isolate served by the host, with its own extension registry."""
    id: str
    name: str
    extensions: ExtensionRegistry
    reassemble: Callable[[], Any] | None = None

    def to_ref(self) -> dict[str, Any]:
        return {"type": "@Isolate", "id": self.id, "name": self.name}


@dataclass
class _Peer:
    connection: ServerConnection
    streams: set[str] = field(default_factory=set)


class ServiceHost:
    """Serves getVM/getIsolate, streams, hot reload and extension calls to
    VM service clients.

    Usage:
        host = ServiceHost()
        host.add_binding(binding)
        await host.start()
        ...  # connect to host.uri
        await host.stop()
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self.host = host
        self._requested_port = port
        self._server: Server | None = None
        self._isolates: dict[str, ServiceIsolate] = {}
        self._peers: dict[ServerConnection, _Peer] = {}
        self._services: dict[str, tuple[str, ServiceHandler]] = {}  # alias -> (service, handler)
        self._next_isolate = 0
        self._next_service = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("Service host is not running")
        return self._server.sockets[0].getsockname()[1]

    @property
    def uri(self) -> str:
        return f"ws://{self.host}:{self.port}/ws"

    @property
    def isolates(self) -> list[ServiceIsolate]:
        return list(self._isolates.values())

    # Setup

    def add_isolate(
        self,
        extensions: ExtensionRegistry,
        name: str = "main",
        reassemble: Callable[[], Any] | None = None,
    ) -> ServiceIsolate:
        """Serve ``extensions`` as a new isolate."""
        self._next_isolate += 1
        isolate = ServiceIsolate(
            id=f"isolates/{self._next_isolate}",
            name=name,
            extensions=extensions,
            reassemble=reassemble,
        )
        self._isolates[isolate.id] = isolate
        extensions.on_registered(
            lambda method: self._post_event(
                StreamEvent(
                    Streams.ISOLATE,
                    EventKinds.SERVICE_EXTENSION_ADDED,
                    {"isolate": isolate.to_ref(), "extensionRPC": method},
                )
            )
        )
        logger.debug(f"Added isolate {isolate.id} ({name})")
        return isolate

    def add_binding(self, binding: MarionetteBinding, name: str = "main") -> ServiceIsolate:
        """Serve a marionette binding; hot reloads reassemble it."""
        return self.add_isolate(binding.extensions, name, binding.reassemble)

    def register_service(self, service: str, handler: ServiceHandler) -> str:
        """Register a named service and announce it on the Service stream.

        Returns:
            The method alias clients call the service with.
        """
        self._next_service += 1
        alias = f"s{self._next_service}.{service}"
        self._services[alias] = (service, handler)
        logger.info(f"Registered service {service} as {alias}")
        self._post_event(self._service_registered(service, alias))
        return alias

    def unregister_service(self, service: str) -> None:
        for alias, (name, _) in list(self._services.items()):
            if name == service:
                del self._services[alias]
                self._post_event(
                    StreamEvent(
                        Streams.SERVICE,
                        EventKinds.SERVICE_UNREGISTERED,
                        {"service": service, "method": alias},
                    )
                )

    # Lifecycle

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await serve(
            self._handle_connection,
            self.host,
            self._requested_port,
            max_size=MAX_MESSAGE_SIZE,
        )
        logger.info(f"Service host listening on {self.uri}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._peers.clear()
        logger.info("Service host stopped")

    async def __aenter__(self) -> ServiceHost:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # Connection handling

    async def _handle_connection(self, connection: ServerConnection) -> None:
        peer = _Peer(connection)
        self._peers[connection] = peer
        logger.debug(f"Client connected: {connection.remote_address}")
        try:
            async for raw in connection:
                task = asyncio.create_task(self._handle_message(peer, raw))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except ConnectionClosed:
            pass
        finally:
            self._peers.pop(connection, None)
            logger.debug(f"Client disconnected: {connection.remote_address}")

    async def _handle_message(self, peer: _Peer, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
            request = RPCRequest.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Malformed request: {e}")
            response = RPCResponse.fault(
                "", ErrorCodes.PARSE_ERROR, _error_message(ErrorCodes.PARSE_ERROR)
            )
            await self._reply(peer, response)
            return

        logger.debug(f"<<< {request.method}: {request.params}")
        try:
            response = await self._dispatch(peer, request)
        except Exception as e:
            logger.exception(f"Error handling {request.method}")
            response = RPCResponse.fault(
                request.id, ErrorCodes.INTERNAL_ERROR, _error_message(ErrorCodes.INTERNAL_ERROR), str(e)
            )
        await self._reply(peer, response)

        if request.method == Methods.STREAM_LISTEN and response.success:
            await self._replay_stream(peer, request.params.get("streamId"))

    async def _reply(self, peer: _Peer, response: RPCResponse) -> None:
        try:
            await peer.connection.send(response.to_json())
        except ConnectionClosed:
            logger.debug(f"Dropping response {response.id}, client gone")

    async def _dispatch(self, peer: _Peer, request: RPCRequest) -> RPCResponse:
        method = request.method
        params = request.params

        if method == Methods.GET_VM:
            return RPCResponse(request.id, result={
                "type": "VM",
                "name": "vm",
                "isolates": [isolate.to_ref() for isolate in self._isolates.values()],
            })

        if method == Methods.STREAM_LISTEN:
            stream_id = params.get("streamId")
            if stream_id in peer.streams:
                return self._fault(request, ErrorCodes.STREAM_ALREADY_SUBSCRIBED)
            peer.streams.add(stream_id)
            return RPCResponse(request.id, result={"type": "Success"})

        if method == Methods.STREAM_CANCEL:
            stream_id = params.get("streamId")
            if stream_id not in peer.streams:
                return self._fault(request, ErrorCodes.STREAM_NOT_SUBSCRIBED)
            peer.streams.discard(stream_id)
            return RPCResponse(request.id, result={"type": "Success"})

        if method in self._services:
            _, handler = self._services[method]
            result = await handler(params)
            return RPCResponse(request.id, result=result)

        isolate = self._isolates.get(params.get("isolateId"))

        if method == Methods.GET_ISOLATE:
            if isolate is None:
                return self._fault(request, ErrorCodes.INVALID_PARAMS, "Unknown isolateId")
            return RPCResponse(request.id, result={
                "type": "Isolate",
                **isolate.to_ref(),
                "extensionRPCs": isolate.extensions.methods,
            })

        if method == Methods.RELOAD_SOURCES:
            if isolate is None:
                return self._fault(request, ErrorCodes.INVALID_PARAMS, "Unknown isolateId")
            return RPCResponse(request.id, result=await self._reload(isolate))

        if method.startswith(EXTENSION_PREFIX):
            if isolate is None:
                return self._fault(request, ErrorCodes.INVALID_PARAMS, "Unknown isolateId")
            args = {
                key: value if isinstance(value, str) else json.dumps(value)
                for key, value in params.items()
                if key != "isolateId"
            }
            outcome = await isolate.extensions.dispatch(method, args)
            if outcome.is_error:
                return self._fault(request, outcome.error_code, outcome.error_detail)
            return RPCResponse(request.id, result=outcome.result)

        return self._fault(request, ErrorCodes.METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _fault(
        self, request: RPCRequest, code: int, details: str | None = None
    ) -> RPCResponse:
        return RPCResponse.fault(request.id, code, _error_message(code), details)

    async def _reload(self, isolate: ServiceIsolate) -> dict[str, Any]:
        logger.info(f"Reloading isolate {isolate.id}")
        notices = []
        success = True
        if isolate.reassemble is not None:
            try:
                result = isolate.reassemble()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Reassemble failed: {e}")
                success = False
                notices.append({"type": "ReasonForCancelling", "message": str(e)})
        return {"type": "ReloadReport", "success": success, "notices": notices}

    # Events

    def _service_registered(self, service: str, alias: str) -> StreamEvent:
        return StreamEvent(
            Streams.SERVICE,
            EventKinds.SERVICE_REGISTERED,
            {"service": service, "method": alias, "alias": service},
        )

    async def _replay_stream(self, peer: _Peer, stream_id: str | None) -> None:
        """Tell a new Service stream subscriber about services already registered."""
        if stream_id != Streams.SERVICE:
            return
        for alias, (service, _) in list(self._services.items()):
            try:
                await peer.connection.send(self._service_registered(service, alias).to_json())
            except ConnectionClosed:
                return

    def _post_event(self, event: StreamEvent) -> None:
        connections = [
            peer.connection
            for peer in self._peers.values()
            if event.stream_id in peer.streams
        ]
        if connections:
            logger.debug(f">>> Event {event.stream_id}/{event.kind}")
            broadcast(connections, event.to_json())
