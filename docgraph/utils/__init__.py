"""Utility functions and helpers."""

from docgraph.utils.exceptions import (
    BaseAppException,
    EmptyContentError,
    ExtractionError,
    UnsupportedFormatError,
)

__all__ = [
    "BaseAppException",
    "EmptyContentError",
    "ExtractionError",
    "UnsupportedFormatError",
]
