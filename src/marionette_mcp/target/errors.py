"""Target-side interaction exceptions.

Each carries the offset reported to the controller as an application error.
"""


class TargetError(Exception):
    """Base exception for UI interaction errors."""

    code = 1


class ElementNotFoundError(TargetError):
    """Raised when no element matches the given criteria."""

    code = 1


class TextInputNotFoundError(TargetError):
    """Raised when the matched element exposes no editable text."""

    code = 2


class ScrollableNotFoundError(TargetError):
    """Raised when there is nothing to scroll."""

    code = 3


class InvalidParamsError(ValueError):
    """Raised when extension parameters fail validation."""
