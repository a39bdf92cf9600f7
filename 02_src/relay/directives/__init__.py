"""Response directive module."""

from .parser import (
    DIRECTIVE_PATTERN,
    MARKER_PATTERN,
    filter_unsent,
    media_marker,
    parse_directives,
)

__all__ = [
    "DIRECTIVE_PATTERN",
    "MARKER_PATTERN",
    "parse_directives",
    "filter_unsent",
    "media_marker",
]
