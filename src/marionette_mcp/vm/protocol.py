"""VM service protocol message types and serialization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

JSONRPC_VERSION = "2.0"

# Reserved prefix for service extensions on the wire
EXTENSION_PREFIX = "ext.flutter."


@dataclass
class RPCRequest:
    """JSON-RPC request message."""
    id: str
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
        }
        if self.params:
            d["params"] = self.params
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RPCRequest:
        return cls(
            id=str(data["id"]),
            method=data["method"],
            params=data.get("params") or {},
        )


@dataclass
class RPCResponse:
    """JSON-RPC response message (result or error)."""
    id: str
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> int | None:
        return self.error.get("code") if self.error else None

    @property
    def error_message(self) -> str | None:
        return self.error.get("message") if self.error else None

    @property
    def error_details(self) -> str | None:
        if not self.error:
            return None
        data = self.error.get("data")
        if isinstance(data, dict):
            return data.get("details")
        return None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result or {}
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RPCResponse:
        return cls(
            id=str(data["id"]),
            result=data.get("result"),
            error=data.get("error"),
        )

    @classmethod
    def fault(
        cls, id: str, code: int, message: str, details: str | None = None
    ) -> RPCResponse:
        error: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            error["data"] = {"details": details}
        return cls(id=id, error=error)


@dataclass
class StreamEvent:
    """Stream notification pushed by the service (``streamNotify``)."""
    stream_id: str
    kind: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        event = {"type": "Event", "kind": self.kind, **self.data}
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": Methods.STREAM_NOTIFY,
            "params": {"streamId": self.stream_id, "event": event},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamEvent:
        params = data.get("params") or {}
        event = dict(params.get("event") or {})
        kind = event.pop("kind", "")
        event.pop("type", None)
        return cls(stream_id=params.get("streamId", ""), kind=kind, data=event)


def parse_message(data: dict[str, Any]) -> RPCResponse | StreamEvent:
    """Parse a message received by the client."""
    if data.get("method") == Methods.STREAM_NOTIFY:
        return StreamEvent.from_dict(data)
    elif "id" in data and ("result" in data or "error" in data):
        return RPCResponse.from_dict(data)
    else:
        raise ValueError(f"Unknown message: {data}")


def to_wire_name(name: str) -> str:
    """Add the reserved extension prefix."""
    return f"{EXTENSION_PREFIX}{name}"


def from_wire_name(name: str) -> str:
    """Strip the reserved extension prefix for display."""
    if name.startswith(EXTENSION_PREFIX):
        return name[len(EXTENSION_PREFIX):]
    return name


# Common VM service methods
class Methods:
    GET_VM = "getVM"
    GET_ISOLATE = "getIsolate"
    STREAM_LISTEN = "streamListen"
    STREAM_CANCEL = "streamCancel"
    RELOAD_SOURCES = "reloadSources"
    STREAM_NOTIFY = "streamNotify"


# Stream ids
class Streams:
    SERVICE = "Service"
    ISOLATE = "Isolate"
    EXTENSION = "Extension"


# Event kinds
class EventKinds:
    SERVICE_REGISTERED = "ServiceRegistered"
    SERVICE_UNREGISTERED = "ServiceUnregistered"
    SERVICE_EXTENSION_ADDED = "ServiceExtensionAdded"


# Well-known JSON-RPC error codes
class ErrorCodes:
    PARSE_ERROR = -32700
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    STREAM_ALREADY_SUBSCRIBED = 103
    STREAM_NOT_SUBSCRIBED = 104
