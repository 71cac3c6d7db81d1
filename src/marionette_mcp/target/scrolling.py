"""Scrolls the UI until an element becomes visible."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import ElementNotFoundError, InvalidParamsError, ScrollableNotFoundError
from .geometry import Offset
from .matchers import CoordinatesMatcher
from .serialization import is_visible, measure

if TYPE_CHECKING:
    from .configuration import MarionetteConfiguration
    from .finder import WidgetFinder
    from .gestures import GestureDispatcher
    from .matchers import Matcher
    from .tree import UIElement, UIHost

logger = logging.getLogger(__name__)


class ScrollSimulator:
    """Drags the nearest scrollable until the target shows up on screen."""

    def __init__(
        self,
        host: UIHost,
        finder: WidgetFinder,
        gestures: GestureDispatcher,
        configuration: MarionetteConfiguration,
    ):
        self._host = host
        self._finder = finder
        self._gestures = gestures
        self._configuration = configuration

    async def scroll_until_visible(self, matcher: Matcher) -> UIElement:
        """
        Scroll step by step until the element matching ``matcher`` is visible.

        The element counts as visible once it overlaps both the viewport and
        the scrollable that clips it.

        Returns:
            The visible element

        Raises:
            InvalidParamsError: If ``matcher`` is a coordinates matcher
            ScrollableNotFoundError: If there is nothing to scroll
            ElementNotFoundError: If the element is still not visible after
                ``max_scrolls`` steps
        """
        if isinstance(matcher, CoordinatesMatcher):
            raise InvalidParamsError("Cannot scroll to coordinates; use key, text, or type")

        max_scrolls = self._configuration.max_scrolls
        delta = Offset(0, -self._configuration.scroll_delta)

        for attempt in range(max_scrolls + 1):
            path = self._finder.find_path(matcher)
            if path is not None and self._is_shown(path):
                logger.debug(f"Element visible after {attempt} scroll(s)")
                return path[-1]

            if attempt == max_scrolls:
                break

            scrollable = self._scrollable_for(path)
            bounds = measure(scrollable)
            if bounds is None or bounds.size.is_empty:
                raise ScrollableNotFoundError(
                    f"Scrollable {scrollable.type_name} has no size and cannot be scrolled"
                )
            await self._gestures.drag(bounds.center, delta)

        raise ElementNotFoundError(
            f"Element matching {matcher.to_dict()} not visible after {max_scrolls} scrolls"
        )

    def _is_shown(self, path: list[UIElement]) -> bool:
        target = path[-1]
        if not is_visible(target, self._host.viewport):
            return False

        clip = self._nearest_scrollable(path)
        if clip is None:
            return True
        target_bounds = measure(target)
        clip_bounds = measure(clip)
        return (
            target_bounds is not None
            and clip_bounds is not None
            and target_bounds.overlaps(clip_bounds)
        )

    def _nearest_scrollable(self, path: list[UIElement]) -> UIElement | None:
        for ancestor in reversed(path[:-1]):
            if self._configuration.is_scrollable(ancestor):
                return ancestor
        return None

    def _scrollable_for(self, path: list[UIElement] | None) -> UIElement:
        """Nearest scrollable ancestor of the target, or the first scrollable
        in the tree if the target is not built yet."""
        if path is not None:
            ancestor = self._nearest_scrollable(path)
            if ancestor is None:
                raise ScrollableNotFoundError(
                    f"{path[-1].type_name} is off screen and has no scrollable ancestor"
                )
            return ancestor

        found = self._finder.find_first(self._configuration.is_scrollable, self._host.root)
        if found is None:
            raise ScrollableNotFoundError("No scrollable element found in the UI tree")
        return found[-1]
