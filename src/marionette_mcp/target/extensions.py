"""Service extension registry and dispatcher."""

from __future__ import annotations

import asyncio
import json
import logging
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..vm.protocol import EXTENSION_PREFIX, to_wire_name
from .errors import InvalidParamsError
from .result import (
    EXTENSION_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    ExtensionError,
    ExtensionInvalidParams,
    ExtensionResult,
    ExtensionSuccess,
)

logger = logging.getLogger(__name__)

ExtensionCallback = Callable[[dict[str, str]], Awaitable[ExtensionResult]]


@dataclass(frozen=True)
class ExtensionRegistration:
    """A registered extension."""
    name: str  # Without the wire prefix
    callback: ExtensionCallback
    description: str | None = None

    @property
    def method(self) -> str:
        return to_wire_name(self.name)


@dataclass(frozen=True)
class ExtensionFaultReport:
    """An uncaught exception raised by an extension callback."""
    method: str
    exception: BaseException
    stack: str

    @property
    def context(self) -> str:
        return f'during a service extension callback for "{self.method}"'


ErrorReporter = Callable[[ExtensionFaultReport], None]


def log_fault(report: ExtensionFaultReport) -> None:
    """Default error channel: log the fault with its traceback."""
    logger.error(
        f"Exception caught {report.context}: {report.exception}",
        exc_info=report.exception,
    )


@dataclass(frozen=True)
class ServiceExtensionResponse:
    """Wire-level outcome of an extension call."""
    result: dict[str, Any] | None = None
    error_code: int | None = None
    error_detail: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    @classmethod
    def ok(cls, data: dict[str, Any]) -> ServiceExtensionResponse:
        return cls(result=data)

    @classmethod
    def error(cls, code: int, detail: str) -> ServiceExtensionResponse:
        return cls(error_code=code, error_detail=detail)


class ExtensionRegistry:
    """Maps extension names to async callbacks and turns their results into
    wire responses.

    Extensions registered with :meth:`register` are listed in
    :attr:`custom_extensions`; built-in ones use :meth:`register_internal`.
    The registry only grows.
    """

    def __init__(self, error_reporter: ErrorReporter | None = None):
        self._error_reporter = error_reporter or log_fault
        self._extensions: dict[str, ExtensionRegistration] = {}  # wire name -> registration
        self._custom: list[ExtensionRegistration] = []
        self._listeners: list[Callable[[str], None]] = []

    @property
    def methods(self) -> list[str]:
        """Wire names of all registered extensions."""
        return list(self._extensions)

    @property
    def custom_extensions(self) -> list[dict[str, str]]:
        """Name and description of each app-registered extension."""
        result = []
        for registration in self._custom:
            entry = {"name": registration.name}
            if registration.description is not None:
                entry["description"] = registration.description
            result.append(entry)
        return result

    def has(self, method: str) -> bool:
        return method in self._extensions

    def on_registered(self, listener: Callable[[str], None]) -> None:
        """Call ``listener`` with the wire name of each new extension."""
        self._listeners.append(listener)

    def register(
        self,
        name: str,
        callback: ExtensionCallback,
        description: str | None = None,
    ) -> None:
        """
        Register an app-specific extension.

        The ``ext.flutter.`` prefix is added automatically.

        Raises:
            ValueError: If the name is empty, already prefixed, or taken
        """
        registration = self._add(name, callback, description)
        self._custom.append(registration)

    def register_internal(self, name: str, callback: ExtensionCallback) -> None:
        """Register a built-in extension, not listed in custom_extensions."""
        self._add(name, callback, None)

    def _add(
        self, name: str, callback: ExtensionCallback, description: str | None
    ) -> ExtensionRegistration:
        if not name:
            raise ValueError("Extension name must not be empty")
        if name.startswith(EXTENSION_PREFIX):
            raise ValueError(
                f'Extension name must not include the "{EXTENSION_PREFIX}" prefix: {name}'
            )

        registration = ExtensionRegistration(name, callback, description)
        if registration.method in self._extensions:
            raise ValueError(f"Extension already registered: {registration.method}")

        self._extensions[registration.method] = registration
        logger.debug(f"Registered extension {registration.method}")
        for listener in self._listeners:
            try:
                listener(registration.method)
            except Exception:
                logger.exception("Extension listener error")
        return registration

    async def dispatch(
        self, method: str, params: dict[str, str]
    ) -> ServiceExtensionResponse:
        """Run the extension registered as ``method`` and build its response."""
        registration = self._extensions.get(method)
        if registration is None:
            return ServiceExtensionResponse.error(METHOD_NOT_FOUND, f"Unknown method: {method}")

        # Let the current loop iteration (e.g. a frame in progress) finish first
        await asyncio.sleep(0)

        try:
            result = await registration.callback(params)
            if not isinstance(result, (ExtensionSuccess, ExtensionError, ExtensionInvalidParams)):
                raise TypeError(f"Extension {method} returned {result!r}")
        except InvalidParamsError as e:
            return ServiceExtensionResponse.error(INVALID_PARAMS, str(e))
        except Exception as exception:
            stack = traceback.format_exc()
            self._error_reporter(ExtensionFaultReport(method, exception, stack))
            return ServiceExtensionResponse.error(
                EXTENSION_ERROR,
                json.dumps({
                    "exception": str(exception),
                    "stack": stack,
                    "method": method,
                }),
            )

        match result:
            case ExtensionSuccess(data=data):
                payload = dict(data)
                payload["type"] = "_extensionType"
                payload["method"] = method
                payload["status"] = "Success"
                return ServiceExtensionResponse.ok(payload)
            case ExtensionError():
                return ServiceExtensionResponse.error(result.wire_code, result.detail)
            case ExtensionInvalidParams(detail=detail):
                return ServiceExtensionResponse.error(INVALID_PARAMS, detail)
