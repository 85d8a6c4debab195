"""Rough output size and duration estimates shown before converting.

These are heuristics, not measurements: media duration is guessed from the
file size and a typical bitrate for the resolution and quality.
"""

import math
from typing import Sequence

from uniconv.core.options import QualityLevel, parse_resolution
from uniconv.io.formats import MediaCategory

MB = 1024 * 1024

# Typical video bitrate in kbit/s by output resolution
VIDEO_BITRATES = {
    (640, 360): 800,
    (1280, 720): 1500,
    (1920, 1080): 3000,
}
DEFAULT_VIDEO_BITRATE = 2000

AUDIO_BITRATES = {
    QualityLevel.LOW: 64,
    QualityLevel.MEDIUM: 128,
    QualityLevel.HIGH: 320,
}

# GIF megabytes per minute of footage by resolution
GIF_MB_PER_MINUTE = {
    (640, 360): 5,
    (1280, 720): 15,
    (1920, 1080): 30,
}
DEFAULT_GIF_MB_PER_MINUTE = 10

VIDEO_RESOLUTION_FACTORS = {
    (640, 360): 0.5,
    (1280, 720): 0.8,
    (1920, 1080): 1.2,
}

QUALITY_BITRATE_FACTORS = {QualityLevel.LOW: 0.7, QualityLevel.MEDIUM: 1.0, QualityLevel.HIGH: 1.3}
VIDEO_SIZE_FACTORS = {QualityLevel.LOW: 0.6, QualityLevel.MEDIUM: 1.0, QualityLevel.HIGH: 1.4}
AUDIO_SIZE_FACTORS = {QualityLevel.LOW: 0.5, QualityLevel.MEDIUM: 1.0, QualityLevel.HIGH: 1.5}
IMAGE_SIZE_FACTORS = {QualityLevel.LOW: 0.3, QualityLevel.MEDIUM: 1.0, QualityLevel.HIGH: 1.5}
GIF_SIZE_FACTORS = {QualityLevel.LOW: 0.5, QualityLevel.MEDIUM: 1.0, QualityLevel.HIGH: 1.5}

WEBP_SIZE_FACTOR = 0.3
IMAGE_SECONDS = 5.0
PDF_OVERHEAD = 1.1


def _level(quality: QualityLevel | str | None) -> QualityLevel:
    return QualityLevel.parse(quality) or QualityLevel.MEDIUM


def estimate_video_duration(
    size: int, resolution: str | None = None, quality: QualityLevel | str | None = None
) -> float:
    """Guess a video's duration in seconds from its size in bytes."""
    bitrate = VIDEO_BITRATES.get(parse_resolution(resolution), DEFAULT_VIDEO_BITRATE)
    bitrate *= QUALITY_BITRATE_FACTORS[_level(quality)]
    return (size / MB) * 8 * 1024 / bitrate


def estimate_audio_duration(size: int, quality: QualityLevel | str | None = None) -> float:
    """Guess an audio file's duration in seconds from its size in bytes."""
    return (size / MB) * 8 * 1024 / AUDIO_BITRATES[_level(quality)]


def gif_megabytes_per_minute(
    resolution: str | None = None, fps: int | None = None, quality: QualityLevel | str | None = None
) -> float:
    per_minute = float(
        GIF_MB_PER_MINUTE.get(parse_resolution(resolution), DEFAULT_GIF_MB_PER_MINUTE)
    )
    fps = fps or 10
    if fps > 15:
        per_minute *= 1.5
    if fps > 20:
        per_minute *= 1.3
    return per_minute * GIF_SIZE_FACTORS[_level(quality)]


def estimate_duration_seconds(
    size: int,
    category: MediaCategory | str | None,
    playback_speed: float | None = None,
    resolution: str | None = None,
    quality: QualityLevel | str | None = None,
) -> float:
    """Estimate the media duration the conversion will process.

    Args:
        size: Input size in bytes
        category: Input media category
        playback_speed: Speed multiplier (video only)
        resolution: Output resolution knob
        quality: Quality level

    Returns:
        Seconds; 0 for unknown categories
    """
    if category is None:
        return 0.0
    category = MediaCategory(category)
    if category == MediaCategory.VIDEO:
        return estimate_video_duration(size, resolution, quality) / (playback_speed or 1.0)
    if category == MediaCategory.AUDIO:
        return estimate_audio_duration(size, quality)
    return IMAGE_SECONDS


def estimate_output_size(
    size: int,
    category: MediaCategory | str | None,
    output_ext: str,
    resolution: str | None = None,
    fps: int | None = None,
    quality: QualityLevel | str | None = None,
) -> int:
    """Estimate the converted file's size in bytes."""
    estimated = float(size)
    level = _level(quality)
    category = MediaCategory(category) if category is not None else None

    if category == MediaCategory.VIDEO:
        if output_ext == "gif":
            minutes = estimate_video_duration(size, resolution, level) / 60
            estimated = gif_megabytes_per_minute(resolution, fps, level) * minutes * MB
        else:
            factor = VIDEO_RESOLUTION_FACTORS.get(parse_resolution(resolution), 1.0)
            estimated = size * VIDEO_SIZE_FACTORS[level] * factor
    elif category == MediaCategory.AUDIO:
        estimated = size * AUDIO_SIZE_FACTORS[level]
    elif category == MediaCategory.IMAGE:
        estimated = size * IMAGE_SIZE_FACTORS[level]

    if output_ext == "webp":
        estimated *= WEBP_SIZE_FACTOR
    return int(round(estimated))


def estimate_pdf_size(sizes: Sequence[int], operation: str) -> int:
    """Estimate a PDF operation's output size in bytes."""
    if not sizes:
        return 0
    if operation in ("extract", "split"):
        return int(sizes[0] / 2)
    return int(round(sum(sizes) * PDF_OVERHEAD))


def estimate_pdf_seconds(file_count: int) -> float:
    return 0.0 if file_count <= 0 else float(file_count * 2 + 3)


def format_size(size: int | float) -> str:
    """Format a byte count as 'x.x KB' below one megabyte, else 'x.x MB'."""
    megabytes = size / MB
    if megabytes < 1:
        return f"{megabytes * 1024:.1f} KB"
    return f"{megabytes:.1f} MB"


def format_duration(seconds: float) -> str:
    """Format seconds as whole seconds under a minute, else whole minutes (rounded up)."""
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    return f"{math.ceil(seconds / 60)}min"
