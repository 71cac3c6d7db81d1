"""Finds and extracts interactive elements from the UI tree."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .serialization import ElementInfo, measure, serialize_element

if TYPE_CHECKING:
    from .configuration import MarionetteConfiguration
    from .tree import UIElement, UIHost

logger = logging.getLogger(__name__)


class ElementTreeFinder:
    """Enumerates the elements an agent can see and interact with."""

    def __init__(self, host: UIHost, configuration: MarionetteConfiguration):
        self._host = host
        self._configuration = configuration

    def find_interactive_elements(self) -> list[dict[str, Any]]:
        """Interactive elements of the current tree, in pre-order."""
        return [info.to_dict() for info in self.collect()]

    def collect(self) -> list[ElementInfo]:
        result: list[ElementInfo] = []
        root = self._host.root
        if root is None:
            return result

        stack: list[UIElement] = [root]
        while stack:
            element = stack.pop()
            info = self._extract(element)
            if info is not None:
                result.append(info)

            if self._configuration.should_stop_at(element.type_name):
                continue
            stack.extend(reversed(list(element.children)))

        return result

    def _extract(self, element: UIElement) -> ElementInfo | None:
        is_interactive = self._configuration.is_interactive_type(element.type_name)
        text = self._configuration.extract_text_from(element)
        has_key = isinstance(element.key, str)

        if not is_interactive and text is None and not has_key:
            return None

        # Only report elements a pointer can actually reach
        if not self.can_be_hit(element):
            return None

        return serialize_element(element, self._host.viewport, text=text)

    def can_be_hit(self, element: UIElement) -> bool:
        """Whether a tap at the element's center lands on the element itself.

        Elements covered by a sibling or clipped away fail this check.
        """
        if not element.attached:
            return False

        bounds = measure(element)
        if bounds is None or bounds.size.is_empty:
            return False

        try:
            path = self._host.hit_test(bounds.center)
        except Exception as e:
            logger.debug(f"Hit test failed for {element.type_name}: {e}")
            return False

        return any(entry is element for entry in path)
