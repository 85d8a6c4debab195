"""Format registry."""

from uniconv.io.formats import (
    MediaCategory,
    available_output_formats,
    classify,
    default_output_format,
    is_supported_conversion,
    list_supported_formats,
    validate_conversion,
)

__all__ = [
    "MediaCategory",
    "classify",
    "is_supported_conversion",
    "validate_conversion",
    "list_supported_formats",
    "available_output_formats",
    "default_output_format",
]
