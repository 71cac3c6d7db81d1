"""Binds the marionette extensions to a host application."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .. import __version__
from .configuration import MarionetteConfiguration
from .element_tree import ElementTreeFinder
from .errors import TargetError
from .extensions import ErrorReporter, ExtensionCallback, ExtensionRegistry
from .finder import WidgetFinder
from .gestures import GestureDispatcher
from .logs import LogStore
from .matchers import matcher_from_params
from .result import (
    ExtensionError,
    ExtensionInvalidParams,
    ExtensionResult,
    ExtensionSuccess,
)
from .screenshots import ScreenshotService
from .scrolling import ScrollSimulator
from .text_input import TextInputSimulator

if TYPE_CHECKING:
    from .tree import UIHost

logger = logging.getLogger(__name__)

# Offset of the "log collection not configured" application error
LOGS_NOT_CONFIGURED = 0

LOGS_NOT_CONFIGURED_MESSAGE = """Log collection is not configured.

To enable log collection, pass a LogCollector via MarionetteConfiguration:

Option 1: Collect records from the standard logging module
  MarionetteBinding(host, MarionetteConfiguration(log_collector=LoggingLogCollector()))

Option 2: Feed log lines yourself
  collector = PrintLogCollector()
  MarionetteBinding(host, MarionetteConfiguration(log_collector=collector))
  collector.add_log(message)  # from your logging listener
"""


class MarionetteBinding:
    """Owns the extension registry of one app and the services behind the
    built-in ``marionette.*`` extensions."""

    def __init__(
        self,
        host: UIHost,
        configuration: MarionetteConfiguration | None = None,
        error_reporter: ErrorReporter | None = None,
    ):
        self.host = host
        self.configuration = configuration or MarionetteConfiguration()
        self.extensions = ExtensionRegistry(error_reporter)

        self._widget_finder = WidgetFinder(host, self.configuration)
        self._element_tree_finder = ElementTreeFinder(host, self.configuration)
        self._gesture_dispatcher = GestureDispatcher(host, self._widget_finder)
        self._screenshot_service = ScreenshotService(
            host, self.configuration.max_screenshot_size
        )
        self._scroll_simulator = ScrollSimulator(
            host, self._widget_finder, self._gesture_dispatcher, self.configuration
        )
        self._text_input_simulator = TextInputSimulator(host, self._widget_finder)

        # Initialize log collection if a collector is provided
        self._log_store: LogStore | None = None
        if self.configuration.log_collector is not None:
            self._log_store = LogStore()
            self.configuration.log_collector.start(self._log_store.add)

        self._register_builtin_extensions()

    @property
    def log_store(self) -> LogStore | None:
        return self._log_store

    def register_extension(
        self,
        name: str,
        callback: ExtensionCallback,
        description: str | None = None,
    ) -> None:
        """Register an app-specific extension, listed by listCustomExtensions."""
        self.extensions.register(name, callback, description)

    def reassemble(self) -> None:
        """Called after a hot reload."""
        if self._log_store is not None:
            logger.debug(f"Clearing {len(self._log_store)} collected log line(s)")
            self._log_store.clear()

    def _register_builtin_extensions(self) -> None:
        register = self.extensions.register_internal
        register("marionette.getVersion", self._get_version)
        register("marionette.interactiveElements", self._interactive_elements)
        register("marionette.tap", self._tap)
        register("marionette.enterText", self._enter_text)
        register("marionette.scrollTo", self._scroll_to)
        register("marionette.getLogs", self._get_logs)
        register("marionette.takeScreenshots", self._take_screenshots)
        register("marionette.listCustomExtensions", self._list_custom_extensions)

    # Built-in extension callbacks

    async def _get_version(self, params: dict[str, str]) -> ExtensionResult:
        return ExtensionSuccess({"version": __version__})

    async def _interactive_elements(self, params: dict[str, str]) -> ExtensionResult:
        elements = self._element_tree_finder.find_interactive_elements()
        return ExtensionSuccess({"elements": elements})

    async def _tap(self, params: dict[str, str]) -> ExtensionResult:
        matcher = matcher_from_params(params)
        try:
            await self._gesture_dispatcher.tap(matcher)
        except TargetError as e:
            return ExtensionError(e.code, str(e))
        return ExtensionSuccess({"message": f"Tapped element matching: {matcher.to_dict()}"})

    async def _enter_text(self, params: dict[str, str]) -> ExtensionResult:
        matcher = matcher_from_params(params)
        input = params.get("input")
        if input is None:
            return ExtensionInvalidParams("Missing required parameter: input")

        try:
            await self._text_input_simulator.enter_text(matcher, input)
        except TargetError as e:
            return ExtensionError(e.code, str(e))
        return ExtensionSuccess(
            {"message": f"Entered text into element matching: {matcher.to_dict()}"}
        )

    async def _scroll_to(self, params: dict[str, str]) -> ExtensionResult:
        matcher = matcher_from_params(params)
        try:
            await self._scroll_simulator.scroll_until_visible(matcher)
        except TargetError as e:
            return ExtensionError(e.code, str(e))
        return ExtensionSuccess({"message": f"Scrolled to element matching: {matcher.to_dict()}"})

    async def _get_logs(self, params: dict[str, str]) -> ExtensionResult:
        if self._log_store is None:
            return ExtensionError(LOGS_NOT_CONFIGURED, LOGS_NOT_CONFIGURED_MESSAGE)

        logs = self._log_store.get_logs()
        return ExtensionSuccess({"logs": logs, "count": len(logs)})

    async def _take_screenshots(self, params: dict[str, str]) -> ExtensionResult:
        screenshots = await self._screenshot_service.take_screenshots()
        return ExtensionSuccess({"screenshots": screenshots})

    async def _list_custom_extensions(self, params: dict[str, str]) -> ExtensionResult:
        return ExtensionSuccess({"extensions": self.extensions.custom_extensions})
