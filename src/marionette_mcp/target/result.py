"""Results returned by extension handlers and their fault codes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Application errors map onto a reserved range of JSON-RPC server error codes.
EXTENSION_ERROR_MIN = -32016
EXTENSION_ERROR_MAX = -32000
MAX_ERROR_OFFSET = EXTENSION_ERROR_MAX - EXTENSION_ERROR_MIN  # 16

# Uncaught exceptions inside a handler
EXTENSION_ERROR = -32000
INVALID_PARAMS = -32602
METHOD_NOT_FOUND = -32601


@dataclass(frozen=True)
class ExtensionSuccess:
    """Successful result. The dispatcher adds the type/method/status markers."""
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExtensionError:
    """Application error with a code offset into the reserved range."""
    code: int
    detail: str

    def __post_init__(self) -> None:
        assert 0 <= self.code <= MAX_ERROR_OFFSET, (
            f"Error code ({self.code}) must be in the range 0..{MAX_ERROR_OFFSET} "
            f"(maps to error codes {EXTENSION_ERROR_MIN}..{EXTENSION_ERROR_MAX})."
        )

    @property
    def wire_code(self) -> int:
        return EXTENSION_ERROR_MIN + self.code


@dataclass(frozen=True)
class ExtensionInvalidParams:
    """A parameter is missing or malformed."""
    detail: str


ExtensionResult = ExtensionSuccess | ExtensionError | ExtensionInvalidParams
