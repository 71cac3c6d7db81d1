"""Criteria for locating one element in the UI tree."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import InvalidParamsError
from .geometry import Offset

if TYPE_CHECKING:
    from .configuration import MarionetteConfiguration
    from .tree import UIElement


@dataclass(frozen=True)
class CoordinatesMatcher:
    """A screen position. Never matches elements; taps go straight to it."""
    x: float
    y: float

    @property
    def offset(self) -> Offset:
        return Offset(self.x, self.y)

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class KeyMatcher:
    """Matches elements whose string key equals ``key``."""
    key: str

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key}


@dataclass(frozen=True)
class TextMatcher:
    """Matches elements whose extracted text equals ``text``."""
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class TypeStringMatcher:
    """Matches elements by runtime type name."""
    type_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type_name}


Matcher = CoordinatesMatcher | KeyMatcher | TextMatcher | TypeStringMatcher


def matcher_from_params(params: Mapping[str, Any]) -> Matcher:
    """Build a matcher from flat criteria.

    If several criteria are present, precedence is:
    coordinates (x and y) > key > text > type.

    Raises:
        InvalidParamsError: If no recognized criteria are present or the
            coordinates are not numbers.
    """
    if "x" in params and "y" in params:
        return CoordinatesMatcher(_parse_number(params, "x"), _parse_number(params, "y"))
    elif "key" in params:
        return KeyMatcher(str(params["key"]))
    elif "text" in params:
        return TextMatcher(str(params["text"]))
    elif "type" in params:
        return TypeStringMatcher(str(params["type"]))
    else:
        raise InvalidParamsError('Matcher must contain "x" & "y", "key", "text", or "type" field')


def _parse_number(params: Mapping[str, Any], name: str) -> float:
    try:
        return float(params[name])
    except (TypeError, ValueError):
        raise InvalidParamsError(f'Invalid "{name}" coordinate: {params[name]!r}') from None


def matches(
    matcher: Matcher, element: UIElement, configuration: MarionetteConfiguration
) -> bool:
    """Check whether ``element`` satisfies ``matcher``."""
    match matcher:
        case CoordinatesMatcher():
            return False
        case KeyMatcher(key=key):
            element_key = element.key
            return isinstance(element_key, str) and element_key == key
        case TextMatcher(text=text):
            return configuration.extract_text_from(element) == text
        case TypeStringMatcher(type_name=type_name):
            return element.type_name == type_name
    raise TypeError(f"Unsupported matcher: {matcher!r}")
