"""A small retained-mode scene implementing the UI host interfaces.

Useful for demos and tests, and as a starting point for adapting a real
toolkit: each :class:`Node` is a :class:`~.tree.UIElement` and
:class:`Scene` is a :class:`~.tree.UIHost`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from io import BytesIO
from typing import Any

from PIL import Image, ImageDraw

from .configuration import SCROLLABLE_TYPES
from .geometry import Offset, Rect, Size
from .tree import Property

logger = logging.getLogger(__name__)


@dataclass
class TextBuffer:
    """Editable text of a text input."""
    text: str = ""


class Node:
    """One element of a :class:`Scene`.

    ``frame`` is relative to the parent's content origin, which moves with
    the parent's scroll offset. Later children paint above earlier ones.
    """

    def __init__(
        self,
        type_name: str,
        frame: Rect,
        children: Iterable[Node] = (),
        key: Any = None,
        text: str | None = None,
        editable: TextBuffer | None = None,
        on_tap: Callable[[], Any] | None = None,
        scrollable: bool | None = None,
        props: dict[str, Any] | None = None,
    ):
        self.type_name = type_name
        self.frame = frame
        self.key = key
        self.text = text
        self.editable = editable
        self.on_tap = on_tap
        self.scrollable = type_name in SCROLLABLE_TYPES if scrollable is None else scrollable
        self.props = dict(props or {})
        self.mounted = True
        self.scroll_offset = 0.0
        self.parent: Node | None = None
        self._children: list[Node] = []
        for child in children:
            self.add(child)

    def __repr__(self) -> str:
        return f"Node({self.type_name!r}, key={self.key!r})"

    @property
    def children(self) -> list[Node]:
        return list(self._children)

    @property
    def attached(self) -> bool:
        return self.mounted and (self.parent is None or self.parent.attached)

    def add(self, child: Node) -> Node:
        child.parent = self
        self._children.append(child)
        return child

    def remove(self, child: Node) -> None:
        self._children.remove(child)
        child.parent = None

    def origin(self) -> Offset:
        """Global position of the frame's top-left corner."""
        if self.parent is None:
            return Offset(self.frame.x, self.frame.y)
        return self.parent.content_origin() + Offset(self.frame.x, self.frame.y)

    def content_origin(self) -> Offset:
        return self.origin() + Offset(0, -self.scroll_offset)

    def bounds(self) -> Rect | None:
        if not self.attached:
            return None
        origin = self.origin()
        return Rect(origin.dx, origin.dy, self.frame.width, self.frame.height)

    def properties(self) -> list[Property]:
        result = [Property(name, value) for name, value in self.props.items()]
        if self.scrollable:
            result.append(Property("scrollOffset", self.scroll_offset, generic=True))
        return result

    @property
    def max_scroll_offset(self) -> float:
        content = max((child.frame.bottom for child in self._children), default=0.0)
        return max(0.0, content - self.frame.height)

    def scroll_by(self, pixels: float) -> float:
        """Move the content by ``pixels``, clamped to the content extent."""
        old = self.scroll_offset
        self.scroll_offset = min(max(old + pixels, 0.0), self.max_scroll_offset)
        return self.scroll_offset - old


class Scene:
    """A tree of :class:`Node` objects rendered into one view."""

    def __init__(
        self,
        root: Node | None,
        viewport: Size = Size(400, 800),
        device_pixel_ratio: float = 1.0,
    ):
        self._root = root
        self._viewport = viewport
        self.device_pixel_ratio = device_pixel_ratio
        self.taps: list[Offset] = []
        self.drags: list[tuple[Offset, Offset]] = []

    @property
    def root(self) -> Node | None:
        return self._root

    @root.setter
    def root(self, value: Node | None) -> None:
        self._root = value

    @property
    def viewport(self) -> Size:
        return self._viewport

    def hit_test(self, point: Offset) -> list[Node]:
        if self._root is None:
            return []
        return self._hit(self._root, point)

    def _hit(self, node: Node, point: Offset) -> list[Node]:
        bounds = node.bounds()
        if bounds is None or not bounds.contains(point):
            return []
        for child in reversed(node.children):
            path = self._hit(child, point)
            if path:
                return path + [node]
        return [node]

    async def dispatch_tap(self, point: Offset) -> None:
        self.taps.append(point)
        for node in self.hit_test(point):
            if node.on_tap is not None:
                logger.debug(f"Tap handled by {node!r}")
                result = node.on_tap()
                if asyncio.iscoroutine(result):
                    await result
                return

    async def dispatch_drag(self, start: Offset, delta: Offset) -> None:
        self.drags.append((start, delta))
        for node in self.hit_test(start):
            if node.scrollable:
                moved = node.scroll_by(-delta.dy)
                logger.debug(f"Scrolled {node!r} by {moved}")
                return

    async def pump(self) -> None:
        await asyncio.sleep(0)

    async def take_screenshots(self) -> list[bytes]:
        ratio = self.device_pixel_ratio
        width = max(1, int(self._viewport.width * ratio))
        height = max(1, int(self._viewport.height * ratio))
        img = Image.new("RGB", (width, height), "white")
        if self._root is not None:
            self._paint(ImageDraw.Draw(img), self._root, ratio)
        buf = BytesIO()
        img.save(buf, format="PNG")
        return [buf.getvalue()]

    def _paint(self, draw: ImageDraw.ImageDraw, node: Node, ratio: float) -> None:
        bounds = node.bounds()
        if bounds is None:
            return
        if bounds.overlaps_viewport(self._viewport) and not bounds.size.is_empty:
            draw.rectangle(
                [bounds.x * ratio, bounds.y * ratio, bounds.right * ratio, bounds.bottom * ratio],
                outline="black",
            )
            label = node.editable.text if node.editable is not None else node.text
            if label:
                draw.text((bounds.x * ratio + 2, bounds.y * ratio + 2), label, fill="black")
        for child in node.children:
            self._paint(draw, child, ratio)
