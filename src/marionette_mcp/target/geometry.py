"""Screen geometry value types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Offset:
    """A point in logical pixels."""
    dx: float
    dy: float

    def __add__(self, other: Offset) -> Offset:
        return Offset(self.dx + other.dx, self.dy + other.dy)

    def __neg__(self) -> Offset:
        return Offset(-self.dx, -self.dy)


@dataclass(frozen=True)
class Size:
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in global coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    @property
    def center(self) -> Offset:
        return Offset(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, point: Offset) -> bool:
        return self.x <= point.dx < self.right and self.y <= point.dy < self.bottom

    def overlaps(self, other: Rect) -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def overlaps_viewport(self, viewport: Size) -> bool:
        """True if any part of the rectangle lies inside ``viewport``."""
        return (
            self.right >= 0
            and self.bottom >= 0
            and self.x < viewport.width
            and self.y < viewport.height
        )

    def shift(self, offset: Offset) -> Rect:
        return Rect(self.x + offset.dx, self.y + offset.dy, self.width, self.height)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}
