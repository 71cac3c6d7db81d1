"""Simulated pointer gestures."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import ElementNotFoundError
from .matchers import CoordinatesMatcher, Matcher
from .serialization import measure

if TYPE_CHECKING:
    from .finder import WidgetFinder
    from .geometry import Offset
    from .tree import UIHost

logger = logging.getLogger(__name__)


class GestureDispatcher:
    """Dispatches taps and drags through the host."""

    def __init__(self, host: UIHost, finder: WidgetFinder):
        self._host = host
        self._finder = finder

    async def tap(self, matcher: Matcher) -> None:
        """
        Tap the element matching ``matcher``.

        Coordinates are tapped directly without searching the tree;
        anything else is resolved first and tapped at its center.

        Raises:
            ElementNotFoundError: If no element matches or it has no size
        """
        match matcher:
            case CoordinatesMatcher():
                point = matcher.offset
            case _:
                element = self._finder.find_element(matcher)
                if element is None:
                    raise ElementNotFoundError(
                        f"Element matching {matcher.to_dict()} not found"
                    )
                bounds = measure(element)
                if bounds is None or bounds.size.is_empty:
                    raise ElementNotFoundError(
                        f"Element matching {matcher.to_dict()} has no size and cannot be tapped"
                    )
                point = bounds.center

        logger.debug(f"Tapping at ({point.dx}, {point.dy})")
        await self._host.dispatch_tap(point)
        await self._host.pump()

    async def drag(self, start: Offset, delta: Offset) -> None:
        logger.debug(f"Dragging from ({start.dx}, {start.dy}) by ({delta.dx}, {delta.dy})")
        await self._host.dispatch_drag(start, delta)
        await self._host.pump()
