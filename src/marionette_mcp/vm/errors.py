"""Controller-side exceptions."""

from __future__ import annotations


class MarionetteError(Exception):
    """Base exception for connector errors."""

    pass


class NotConnectedError(MarionetteError):
    """Raised when an operation needs a connection and there is none."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Not connected to any app. Use the connect tool first with the VM service URI."
        )


class ConnectionFailedError(MarionetteError):
    """Raised when the transport cannot be opened or no isolate qualifies."""

    pass


class RPCError(MarionetteError):
    """Raised when the service answers a request with a JSON-RPC error."""

    def __init__(self, method: str, code: int, message: str, details: str | None = None):
        self.method = method
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{method} failed ({code}): {message}")


class ExtensionCallError(MarionetteError):
    """Raised when a service extension call fails."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        details: str | None = None,
        stack_trace: str | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details
        self.stack_trace = stack_trace
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.code is not None:
            parts.append(f"Code: {self.code}")
        if self.details:
            parts.append(f"Error: {self.details}")
        if self.stack_trace:
            parts.append(f"Stack trace: {self.stack_trace}")
        return "\n".join(parts)
