"""Simulated text entry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import ElementNotFoundError, TextInputNotFoundError
from .matchers import CoordinatesMatcher, Matcher

if TYPE_CHECKING:
    from .finder import WidgetFinder
    from .tree import TextSurface, UIElement, UIHost

logger = logging.getLogger(__name__)


def _editable(element: UIElement) -> TextSurface | None:
    return getattr(element, "editable", None)


class TextInputSimulator:
    """Replaces the text of a text input."""

    def __init__(self, host: UIHost, finder: WidgetFinder):
        self._host = host
        self._finder = finder

    async def enter_text(self, matcher: Matcher, input: str) -> None:
        """
        Set the text of the input matching ``matcher`` to ``input``.

        The matched element may be the input itself or any ancestor of it.

        Raises:
            ElementNotFoundError: If no element matches
            TextInputNotFoundError: If the element holds no editable text
        """
        surface = self._find_surface(matcher)
        surface.text = input
        logger.debug(f"Entered {len(input)} character(s)")
        await self._host.pump()

    def _find_surface(self, matcher: Matcher) -> TextSurface:
        match matcher:
            case CoordinatesMatcher():
                for element in self._host.hit_test(matcher.offset):
                    surface = _editable(element)
                    if surface is not None:
                        return surface
                raise TextInputNotFoundError(
                    f"No text input at ({matcher.x}, {matcher.y})"
                )
            case _:
                element = self._finder.find_element(matcher)

        if element is None:
            raise ElementNotFoundError(f"Element matching {matcher.to_dict()} not found")

        path = self._finder.find_first(lambda e: _editable(e) is not None, element)
        if path is None:
            raise TextInputNotFoundError(
                f"Element matching {matcher.to_dict()} is not a text input"
            )
        return _editable(path[-1])
