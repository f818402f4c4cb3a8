# ==================================================
# ================  MODULE: errors  ================
# ==================================================
from __future__ import annotations

# Public API
__all__ = [
    "ImgArrayError",
    "IndexOutOfRange",
    "ShapeMismatch",
    "ChannelMismatch",
    "DivisionByZero",
    "InvalidWindowSize",
    "SizeMismatch",
    "FormatError",
    "UnsupportedDtype",
]


class ImgArrayError(Exception):
    """Base class of every error raised by the imgarray engine."""


class IndexOutOfRange(ImgArrayError, IndexError):
    """A (row, col, channel) coordinate or slice corner lies outside the array."""


class ShapeMismatch(ImgArrayError, ValueError):
    """Two operands do not have compatible shapes."""


class ChannelMismatch(ShapeMismatch):
    """A vector length does not match the channel count of the array."""


class DivisionByZero(ImgArrayError, ZeroDivisionError):
    """A divisor is zero, either as a scalar or as an element of a divisor array."""


class InvalidWindowSize(ImgArrayError, ValueError):
    """A window or structuring pattern has an even or empty extent."""


class SizeMismatch(ImgArrayError, ValueError):
    """An imported buffer does not hold exactly height * width * channel elements."""


class FormatError(ImgArrayError, ValueError):
    """A binary container does not follow the expected layout."""


class UnsupportedDtype(ImgArrayError, TypeError):
    """The requested element type is not part of the supported enumeration."""
