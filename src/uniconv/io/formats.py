"""Format detection and conversion compatibility."""

import copy
from enum import Enum
from pathlib import Path

from uniconv.core.errors import UnsupportedFormat


class MediaCategory(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"


# GIF is treated as video (animated). Still images reach GIF through
# images_to_gif only. SVG is not listed: no engine build guarantees a decoder.
SUPPORTED_FORMATS: dict[MediaCategory, dict[str, tuple[str, ...]]] = {
    MediaCategory.VIDEO: {
        "input": ("mp4", "avi", "mov", "mkv", "webm", "flv", "wmv", "m4v", "3gp", "gif"),
        "output": ("mp4", "avi", "mov", "mkv", "webm", "gif", "flv", "wmv", "m4v", "3gp"),
    },
    MediaCategory.AUDIO: {
        "input": ("mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "opus"),
        "output": ("mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "opus"),
    },
    MediaCategory.IMAGE: {
        "input": ("jpg", "jpeg", "png", "bmp", "tiff", "webp"),
        "output": ("jpg", "jpeg", "png", "bmp", "tiff", "webp"),
    },
}

# Extra targets offered for video input (track / frame extraction)
VIDEO_EXTRACTION_OUTPUTS = ("jpg", "png", "webp", "mp3", "aac", "wav")

DEFAULT_OUTPUT_FORMATS = {
    MediaCategory.VIDEO: "mp4",
    MediaCategory.AUDIO: "mp3",
    MediaCategory.IMAGE: "jpg",
}


def normalize_extension(name_or_ext: str | Path) -> str:
    """Normalize a filename or extension to a bare lowercase extension.

    Args:
        name_or_ext: "clip.MP4", ".mp4", "mp4" or a Path

    Returns:
        Extension without the leading dot (e.g. 'mp4'), '' if there is none
    """
    if isinstance(name_or_ext, Path):
        return name_or_ext.suffix.lower().lstrip(".")
    value = name_or_ext.strip().lower()
    if "." in value:
        value = value.rsplit(".", 1)[1]
    return value


def classify(name_or_ext: str | Path) -> MediaCategory | None:
    """Classify a filename or extension into a media category.

    Args:
        name_or_ext: Filename or extension

    Returns:
        MediaCategory, or None if the extension is not recognized
    """
    ext = normalize_extension(name_or_ext)
    if not ext:
        return None
    for category, lists in SUPPORTED_FORMATS.items():
        if ext in lists["input"] or ext in lists["output"]:
            return category
    return None


def is_supported_conversion(input_ext: str | Path, output_ext: str | Path) -> bool:
    """Check whether converting between two formats is allowed.

    Same-category conversions are allowed, as is extracting audio or
    still frames from video. Every other cross-category pair is rejected.
    """
    input_category = classify(input_ext)
    output_category = classify(output_ext)
    if input_category is None or output_category is None:
        return False
    if input_category == output_category:
        return True
    return input_category == MediaCategory.VIDEO and output_category in (
        MediaCategory.AUDIO,
        MediaCategory.IMAGE,
    )


def validate_conversion(input_ext: str | Path, output_ext: str | Path) -> MediaCategory:
    """Validate a conversion pair, raising if it is not allowed.

    Returns:
        The input's MediaCategory

    Raises:
        UnsupportedFormat: Unknown extension or disallowed category pair
    """
    input_category = classify(input_ext)
    if input_category is None:
        raise UnsupportedFormat(f"Unsupported input format: '{normalize_extension(input_ext)}'")
    output_category = classify(output_ext)
    if output_category is None:
        raise UnsupportedFormat(f"Unsupported output format: '{normalize_extension(output_ext)}'")
    if not is_supported_conversion(input_ext, output_ext):
        raise UnsupportedFormat(
            f"Cannot convert {input_category.value} "
            f"'{normalize_extension(input_ext)}' to {output_category.value} "
            f"'{normalize_extension(output_ext)}'"
        )
    return input_category


def list_supported_formats() -> dict[str, dict[str, list[str]]]:
    """Return the registry as plain lists keyed by category name."""
    return {
        category.value: {key: list(values) for key, values in copy.deepcopy(lists).items()}
        for category, lists in SUPPORTED_FORMATS.items()
    }


def available_output_formats(category: MediaCategory | str) -> list[str]:
    """List output formats a file of the given category can be converted to."""
    category = MediaCategory(category)
    formats = set(SUPPORTED_FORMATS[category]["output"])
    if category == MediaCategory.VIDEO:
        formats.update(VIDEO_EXTRACTION_OUTPUTS)
    return sorted(formats)


def default_output_format(category: MediaCategory | str) -> str:
    """Get the output format used when the caller does not choose one."""
    return DEFAULT_OUTPUT_FORMATS[MediaCategory(category)]
