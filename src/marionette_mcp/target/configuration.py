"""Configuration for the marionette binding."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .geometry import Size

if TYPE_CHECKING:
    from .logs import LogCollector
    from .tree import UIElement

# Built-in element kinds an agent can interact with
INTERACTIVE_TYPES: frozenset[str] = frozenset({
    "ButtonStyleButton",
    "Checkbox",
    "CheckboxListTile",
    "DropdownButton",
    "DropdownButtonFormField",
    "ElevatedButton",
    "FilledButton",
    "FloatingActionButton",
    "GestureDetector",
    "IconButton",
    "InkWell",
    "OutlinedButton",
    "PopupMenuButton",
    "Radio",
    "RadioListTile",
    "Slider",
    "Switch",
    "SwitchListTile",
    "TextButton",
    "TextField",
    "TextFormField",
})

# Built-in kinds whose displayed text can be read from the element's ``text``
TEXT_TYPES: frozenset[str] = frozenset({
    "EditableText",
    "RichText",
    "Text",
    "TextField",
    "TextFormField",
})

# Wrapper kinds that are interactive but must still be descended into
PASS_THROUGH_TYPES: frozenset[str] = frozenset({"GestureDetector", "InkWell"})

SCROLLABLE_TYPES: frozenset[str] = frozenset({
    "CustomScrollView",
    "GridView",
    "ListView",
    "PageView",
    "Scrollable",
    "SingleChildScrollView",
})


@dataclass
class MarionetteConfiguration:
    """Customizes how the UI tree is interpreted.

    Built-in element kinds are supported by default; the callbacks extend
    them for app-specific elements and are consulted only after the
    built-in checks.
    """

    # Return True for custom element types that should be listed as interactive
    is_interactive_widget: Callable[[str], bool] | None = None
    # Return True for custom element types that should stop tree traversal
    should_stop_traversal: Callable[[str], bool] | None = None
    # Return the text of a custom element, or None
    extract_text: Callable[[UIElement], str | None] | None = None
    pass_through_types: frozenset[str] = field(default=PASS_THROUGH_TYPES)
    scrollable_types: frozenset[str] = field(default=SCROLLABLE_TYPES)
    # Screenshots larger than this (physical pixels) are downscaled; None disables
    max_screenshot_size: Size | None = field(default_factory=lambda: Size(2000, 2000))
    log_collector: LogCollector | None = None
    max_scrolls: int = 50
    scroll_delta: float = 64.0

    def is_interactive_type(self, type_name: str) -> bool:
        """Check built-in interactive kinds, then the custom callback."""
        if type_name in INTERACTIVE_TYPES:
            return True
        if self.is_interactive_widget is not None:
            return self.is_interactive_widget(type_name)
        return False

    def should_stop_at(self, type_name: str) -> bool:
        """Whether enumeration should not descend below this type."""
        if self._is_builtin_stop_type(type_name):
            return True
        elif self.should_stop_traversal is not None:
            return self.should_stop_traversal(type_name)
        else:
            return False

    def _is_builtin_stop_type(self, type_name: str) -> bool:
        if type_name in self.pass_through_types:
            return False
        return type_name in INTERACTIVE_TYPES or type_name == "Text"

    def extract_text_from(self, element: UIElement) -> str | None:
        """Text of built-in kinds first, then the custom callback."""
        text = _extract_builtin_text(element)
        if text is None and self.extract_text is not None:
            text = self.extract_text(element)
        return text

    def is_scrollable(self, element: UIElement) -> bool:
        return element.type_name in self.scrollable_types


def _extract_builtin_text(element: UIElement) -> str | None:
    if element.type_name not in TEXT_TYPES:
        return None
    editable = getattr(element, "editable", None)
    if editable is not None:
        return editable.text
    text = getattr(element, "text", None)
    return text if isinstance(text, str) else None
