"""Interfaces the host application implements to expose its live UI tree."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from .geometry import Offset, Rect, Size


@dataclass(frozen=True)
class Property:
    """A declared diagnostic property of an element.

    Generic properties carry internal detail that is not useful to an agent
    and are left out of element records.
    """
    name: str | None
    value: Any
    generic: bool = False


class TextSurface(Protocol):
    """Editable text backing a text input (a controller, a buffer, ...)."""

    text: str


class UIElement(Protocol):
    """One node of the live UI tree.

    An element is only valid for the tree snapshot it was read from. Hosts
    may also expose optional ``text`` (displayed text) and ``editable``
    (a :class:`TextSurface`) attributes; both are read with ``getattr``.
    """

    @property
    def key(self) -> Any:
        """Identifying key; only string keys are matched."""
        ...

    @property
    def type_name(self) -> str:
        """Runtime type name, e.g. ``"ElevatedButton"``."""
        ...

    @property
    def attached(self) -> bool:
        """Whether the element is currently mounted and laid out."""
        ...

    @property
    def children(self) -> Sequence[UIElement]:
        ...

    def bounds(self) -> Rect | None:
        """Global bounds, or None if the element has no measured size.

        May raise if the element cannot be measured.
        """
        ...

    def properties(self) -> Iterable[Property]:
        ...


class UIHost(Protocol):
    """The host application's rendering surface."""

    @property
    def root(self) -> UIElement | None:
        ...

    @property
    def viewport(self) -> Size:
        """Logical size of the primary view."""
        ...

    def hit_test(self, point: Offset) -> Sequence[UIElement]:
        """Elements hit at ``point``, deepest first."""
        ...

    async def dispatch_tap(self, point: Offset) -> None:
        ...

    async def dispatch_drag(self, start: Offset, delta: Offset) -> None:
        ...

    async def pump(self) -> None:
        """Wait until pending layout and paint work has settled."""
        ...

    async def take_screenshots(self) -> list[bytes]:
        """PNG bytes, one per view."""
        ...
