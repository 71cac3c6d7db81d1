"""Target-side binding: UI tree inspection, simulated input and extensions."""

from .binding import MarionetteBinding
from .configuration import MarionetteConfiguration
from .errors import (
    ElementNotFoundError,
    InvalidParamsError,
    ScrollableNotFoundError,
    TargetError,
    TextInputNotFoundError,
)
from .extensions import ExtensionRegistry
from .geometry import Offset, Rect, Size
from .logs import LogCollector, LoggingLogCollector, PrintLogCollector
from .matchers import (
    CoordinatesMatcher,
    KeyMatcher,
    TextMatcher,
    TypeStringMatcher,
    matcher_from_params,
)
from .result import ExtensionError, ExtensionInvalidParams, ExtensionSuccess
from .service import ServiceHost
from .tree import Property, UIElement, UIHost

__all__ = [
    "CoordinatesMatcher",
    "ElementNotFoundError",
    "ExtensionError",
    "ExtensionInvalidParams",
    "ExtensionRegistry",
    "ExtensionSuccess",
    "InvalidParamsError",
    "KeyMatcher",
    "LogCollector",
    "LoggingLogCollector",
    "MarionetteBinding",
    "MarionetteConfiguration",
    "Offset",
    "PrintLogCollector",
    "Property",
    "Rect",
    "ScrollableNotFoundError",
    "ServiceHost",
    "Size",
    "TargetError",
    "TextInputNotFoundError",
    "TextMatcher",
    "TypeStringMatcher",
    "UIElement",
    "UIHost",
    "matcher_from_params",
]
