"""Finds elements in the live UI tree."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from .matchers import Matcher, matches

if TYPE_CHECKING:
    from .configuration import MarionetteConfiguration
    from .tree import UIElement, UIHost


class WidgetFinder:
    """Depth-first, pre-order search for the first matching element.

    Nothing is cached: every call walks the tree as it is right now.
    """

    def __init__(self, host: UIHost, configuration: MarionetteConfiguration):
        self._host = host
        self._configuration = configuration

    def find_element(self, matcher: Matcher) -> UIElement | None:
        """First element under the root matching ``matcher``, or None."""
        return self.find_element_from(matcher, self._host.root)

    def find_element_from(
        self, matcher: Matcher, start: UIElement | None
    ) -> UIElement | None:
        path = self.find_path_from(matcher, start)
        return path[-1] if path else None

    def find_path(self, matcher: Matcher) -> list[UIElement] | None:
        """Like :meth:`find_element`, but returns the root-to-match path."""
        return self.find_path_from(matcher, self._host.root)

    def find_path_from(
        self, matcher: Matcher, start: UIElement | None
    ) -> list[UIElement] | None:
        return self.find_first(
            lambda element: matches(matcher, element, self._configuration), start
        )

    def find_first(
        self,
        predicate: Callable[[UIElement], bool],
        start: UIElement | None,
    ) -> list[UIElement] | None:
        """Path to the first element satisfying ``predicate``.

        A matched element's children are never visited, nor are detached
        subtrees.
        """
        if start is None:
            return None

        stack: list[tuple[UIElement, list[UIElement]]] = [(start, [start])]
        while stack:
            element, path = stack.pop()
            if not element.attached:
                continue
            if predicate(element):
                return path
            for child in reversed(list(element.children)):
                stack.append((child, path + [child]))
        return None
