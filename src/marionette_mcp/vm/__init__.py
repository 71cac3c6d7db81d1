"""VM service client and connector (controller side)."""

from .client import VmServiceClient
from .connector import ConnectionState, HotReloadResult, VmServiceConnector
from .errors import (
    ConnectionFailedError,
    ExtensionCallError,
    MarionetteError,
    NotConnectedError,
    RPCError,
)
from .protocol import RPCRequest, RPCResponse, StreamEvent

__all__ = [
    "ConnectionFailedError",
    "ConnectionState",
    "ExtensionCallError",
    "HotReloadResult",
    "MarionetteError",
    "NotConnectedError",
    "RPCError",
    "RPCRequest",
    "RPCResponse",
    "StreamEvent",
    "VmServiceClient",
    "VmServiceConnector",
]
