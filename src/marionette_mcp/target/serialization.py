"""Serialization utilities for UI elements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .geometry import Rect, Size
    from .tree import UIElement

logger = logging.getLogger(__name__)


@dataclass
class ElementInfo:
    """Information about an interactive element."""

    type: str
    visible: bool
    key: str | None = None
    text: str | None = None
    bounds: dict[str, float] | None = None
    properties: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat dictionary for JSON serialization.

        Declared properties come first; the fixed fields override any
        property of the same name.
        """
        data: dict[str, Any] = dict(self.properties)
        data["type"] = self.type
        if self.key is not None:
            data["key"] = self.key
        if self.text is not None:
            data["text"] = self.text
        if self.bounds is not None:
            data["bounds"] = self.bounds
        data["visible"] = self.visible
        return data


def measure(element: UIElement) -> Rect | None:
    """Bounds of ``element``, or None if it cannot be measured."""
    try:
        return element.bounds()
    except Exception as e:
        logger.debug(f"Could not get bounds of {element.type_name}: {e}")
        return None


def is_visible(element: UIElement, viewport: Size) -> bool:
    """Attached, non-empty, and at least partly inside the viewport."""
    if not element.attached:
        return False

    bounds = measure(element)
    if bounds is None or bounds.size.is_empty:
        return False

    return bounds.overlaps_viewport(viewport)


def serialize_element(
    element: UIElement,
    viewport: Size,
    text: str | None = None,
) -> ElementInfo:
    """
    Serialize a UI element to ElementInfo.

    Args:
        element: The element to serialize
        viewport: Size of the view, used for the visibility flag
        text: Text already extracted for the element, if any

    Returns:
        ElementInfo with the element's type, key, declared properties,
        bounds and visibility. Properties or bounds that cannot be read are
        left out.
    """
    properties: dict[str, str] = {}
    try:
        for prop in element.properties():
            if prop.generic or prop.name is None or prop.value is None:
                continue
            properties[prop.name] = str(prop.value)
    except Exception as e:
        logger.debug(f"Could not get properties of {element.type_name}: {e}")

    key = element.key if isinstance(element.key, str) else None

    bounds = None
    rect = measure(element)
    if rect is not None:
        bounds = rect.to_dict()

    return ElementInfo(
        type=element.type_name,
        visible=is_visible(element, viewport),
        key=key,
        text=text,
        bounds=bounds,
        properties=properties,
    )
