"""Quality and option mapping.

Turns the user's abstract knobs into concrete encoder parameters. All
per-codec numbers live in one table, ``QUALITY_TABLE``, keyed by
``(container, codec)``; ``"*"`` matches any container. Each entry records
which direction is "better" for that codec, since a lower CRF means higher
quality while a higher Vorbis q-factor means higher quality.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from uniconv.core.errors import UnknownCodecError
from uniconv.core.options import ConversionRequest, QualityLevel, format_bitrate, parse_bitrate
from uniconv.io.formats import MediaCategory

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    LOWER_IS_BETTER = "lower"
    HIGHER_IS_BETTER = "higher"


@dataclass(frozen=True)
class QualityScale:
    """Encoder parameter for each quality level.

    A scale with ``flag=None`` marks a lossless codec that takes no
    quality parameter at all.
    """

    flag: str | None
    values: dict[QualityLevel, str] = field(default_factory=dict)
    direction: Direction = Direction.LOWER_IS_BETTER

    def value_for(self, level: QualityLevel | None) -> str | None:
        if self.flag is None:
            return None
        return self.values[level or QualityLevel.MEDIUM]


def _scale(flag: str, low, medium, high, direction=Direction.LOWER_IS_BETTER) -> QualityScale:
    return QualityScale(
        flag=flag,
        values={
            QualityLevel.LOW: str(low),
            QualityLevel.MEDIUM: str(medium),
            QualityLevel.HIGH: str(high),
        },
        direction=direction,
    )


LOSSLESS = QualityScale(flag=None)
HIGHER = Direction.HIGHER_IS_BETTER

QUALITY_TABLE: dict[tuple[str, str], QualityScale] = {
    # Video
    ("*", "libx264"): _scale("-crf", 28, 23, 18),
    ("*", "libvpx-vp9"): _scale("-crf", 40, 30, 20),
    ("*", "libvpx"): _scale("-crf", 40, 25, 10),
    ("*", "wmv2"): _scale("-q:v", 5, 3, 1),
    ("*", "mpeg4"): _scale("-q:v", 10, 5, 2),
    # Audio
    ("*", "libmp3lame"): _scale("-q:a", 5, 3, 0),
    ("*", "libvorbis"): _scale("-q:a", 3, 5, 7, HIGHER),
    ("*", "aac"): _scale("-b:a", "64k", "128k", "256k", HIGHER),
    ("*", "libopus"): _scale("-b:a", "48k", "96k", "160k", HIGHER),
    ("*", "wmav2"): _scale("-b:a", "64k", "128k", "192k", HIGHER),
    ("*", "pcm_s16le"): LOSSLESS,
    ("*", "flac"): LOSSLESS,
    # Images (container implies codec)
    ("jpg", "mjpeg"): _scale("-q:v", 10, 5, 2),
    ("jpeg", "mjpeg"): _scale("-q:v", 10, 5, 2),
    ("webp", "libwebp"): _scale("-quality", 60, 80, 95, HIGHER),
    ("png", "png"): LOSSLESS,
    ("bmp", "bmp"): LOSSLESS,
    ("tiff", "tiff"): LOSSLESS,
}

# Default codecs per output container: (video codec, audio codec)
VIDEO_CODECS: dict[str, tuple[str, str]] = {
    "mp4": ("libx264", "aac"),
    "m4v": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "mkv": ("libx264", "aac"),
    "3gp": ("libx264", "aac"),
    "avi": ("libx264", "libmp3lame"),
    "flv": ("libx264", "libmp3lame"),
    "webm": ("libvpx-vp9", "libopus"),
    "wmv": ("wmv2", "wmav2"),
}

AUDIO_CODECS: dict[str, str] = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "m4a": "aac",
    "ogg": "libvorbis",
    "wav": "pcm_s16le",
    "flac": "flac",
    "opus": "libopus",
    "wma": "wmav2",
}

# Implied encoder for still image containers
IMAGE_CODECS: dict[str, str] = {
    "jpg": "mjpeg",
    "jpeg": "mjpeg",
    "png": "png",
    "bmp": "bmp",
    "tiff": "tiff",
    "webp": "libwebp",
}

GIF_PALETTE_SIZES = {
    QualityLevel.LOW: 32,
    QualityLevel.MEDIUM: 64,
    QualityLevel.HIGH: 128,
}

GIF_DITHER_MODES = {
    QualityLevel.LOW: "none",
    QualityLevel.MEDIUM: "bayer:bayer_scale=3",
    QualityLevel.HIGH: "none",
}

X264_PRESETS = {
    QualityLevel.LOW: "veryfast",
    QualityLevel.MEDIUM: "medium",
    QualityLevel.HIGH: "slow",
}

VPX_CPU_USED = {
    QualityLevel.LOW: "6",
    QualityLevel.MEDIUM: "4",
    QualityLevel.HIGH: "2",
}

CRF_CODECS = ("libx264", "libvpx-vp9", "libvpx")


def quality_scale(codec: str, container: str = "*") -> QualityScale:
    """Look up the quality scale for a codec.

    Raises:
        UnknownCodecError: No table entry for the codec
    """
    scale = QUALITY_TABLE.get((container, codec)) or QUALITY_TABLE.get(("*", codec))
    if scale is None:
        raise UnknownCodecError(codec, container)
    return scale


def map_quality(
    level: QualityLevel | str | None, codec: str, container: str = "*"
) -> tuple[str, str] | None:
    """Map a quality level to an encoder flag and value.

    Args:
        level: Quality level; None means the codec's medium default
        codec: Encoder name (e.g. 'libx264')
        container: Output container, for container-specific entries

    Returns:
        (flag, value), or None for lossless codecs

    Raises:
        UnknownCodecError: No table entry for the codec
    """
    scale = quality_scale(codec, container)
    value = scale.value_for(QualityLevel.parse(level))
    if value is None:
        return None
    return (scale.flag, value)


def is_better(codec: str, a: str, b: str, container: str = "*") -> bool:
    """Check whether parameter value ``a`` means higher quality than ``b``."""
    scale = quality_scale(codec, container)
    a_num, b_num = _numeric(a), _numeric(b)
    if scale.direction == Direction.LOWER_IS_BETTER:
        return a_num < b_num
    return a_num > b_num


def _numeric(value: str) -> float:
    return float(parse_bitrate(value)) if value[-1:].lower() in ("k", "m") else float(value)


def map_preset(level: QualityLevel | str | None, codec: str) -> list[str]:
    """Map a quality level to encoder speed/quality tradeoff arguments."""
    level = QualityLevel.parse(level) or QualityLevel.MEDIUM
    if codec == "libx264":
        return ["-preset", X264_PRESETS[level]]
    if codec == "libvpx-vp9":
        return ["-deadline", "realtime", "-cpu-used", VPX_CPU_USED[level], "-row-mt", "1"]
    if codec == "libvpx":
        return ["-deadline", "realtime", "-cpu-used", VPX_CPU_USED[level]]
    return []


def gif_palette_size(level: QualityLevel | str | None) -> int:
    return GIF_PALETTE_SIZES[QualityLevel.parse(level) or QualityLevel.MEDIUM]


def gif_dither(level: QualityLevel | str | None) -> str:
    return GIF_DITHER_MODES[QualityLevel.parse(level) or QualityLevel.MEDIUM]


def scale_filter(size: tuple[int, int] | None, fast: bool = True) -> str | None:
    """Build a scale filter expression, or None when no scaling is needed."""
    if size is None:
        return None
    width, height = size
    expr = f"scale={width}:{height}"
    if fast:
        expr += ":flags=fast_bilinear"
    return expr


# yuv420p needs even dimensions; no-op on even input
EVEN_SIZE_FILTER = "scale=trunc(iw/2)*2:trunc(ih/2)*2"


def even_scale(size: tuple[int, int] | None) -> tuple[int, int] | None:
    """Keep-aspect sides as -2 so the derived side comes out even."""
    if size is None:
        return None
    return tuple(-2 if side == -1 else side for side in size)


def speed_filter(speed: float | None) -> str | None:
    """Build a timestamp-rescaling filter; None for normal speed."""
    if speed is None or speed == 1.0:
        return None
    return f"setpts={1 / speed:.6g}*PTS"


@dataclass(frozen=True)
class ResolvedEngineParameters:
    """Concrete engine parameters derived from a ConversionRequest."""

    video_codec: str | None = None
    audio_codec: str | None = None
    bitrate_args: list[str] = field(default_factory=list)
    rate_control: list[str] = field(default_factory=list)
    preset: list[str] = field(default_factory=list)
    filters: list[str] = field(default_factory=list)
    palette_size: int | None = None
    dither: str | None = None


def _rate_control(request: ConversionRequest, codec: str) -> list[str]:
    try:
        mapped = map_quality(request.quality, codec, request.output_ext)
    except UnknownCodecError as e:
        logger.warning("%s; leaving rate control to the encoder default", e)
        return []
    return list(mapped) if mapped else []


def _resolve_video(request: ConversionRequest) -> ResolvedEngineParameters:
    default_video, default_audio = VIDEO_CODECS.get(request.output_ext, ("libx264", "aac"))
    video_codec = request.codec or default_video

    if video_codec == "libx264":
        filters = [f for f in (scale_filter(even_scale(request.scale)),) if f]
        filters.append(EVEN_SIZE_FILTER)
    else:
        filters = [f for f in (scale_filter(request.scale),) if f]
    rate_control = _rate_control(request, video_codec)
    bitrate_args: list[str] = []

    if request.bitrate:
        bits = parse_bitrate(request.bitrate)
        if video_codec == "libx264":
            # Capped CRF
            bitrate_args = ["-maxrate", request.bitrate, "-bufsize", format_bitrate(bits * 2)]
        elif video_codec in ("libvpx-vp9", "libvpx"):
            # Constrained quality
            bitrate_args = ["-b:v", request.bitrate]
        else:
            bitrate_args = ["-b:v", request.bitrate]
            rate_control = []
    elif video_codec == "libvpx-vp9" and rate_control:
        # Pure constant-quality mode
        bitrate_args = ["-b:v", "0"]
    elif video_codec == "libvpx" and rate_control:
        # VP8 needs a bitrate ceiling for CRF to take effect
        bitrate_args = ["-b:v", "1M"]

    return ResolvedEngineParameters(
        video_codec=video_codec,
        audio_codec=default_audio,
        bitrate_args=bitrate_args,
        rate_control=rate_control,
        preset=map_preset(request.quality, video_codec),
        filters=filters,
    )


def _resolve_audio(request: ConversionRequest) -> ResolvedEngineParameters:
    audio_codec = request.codec or AUDIO_CODECS.get(request.output_ext, "libmp3lame")
    rate_control = _rate_control(request, audio_codec)
    bitrate_args: list[str] = []
    if request.bitrate:
        # Explicit bitrate replaces the quality-derived parameter
        bitrate_args = ["-b:a", request.bitrate]
        rate_control = []
    return ResolvedEngineParameters(
        audio_codec=audio_codec,
        bitrate_args=bitrate_args,
        rate_control=rate_control,
    )


def _resolve_image(request: ConversionRequest) -> ResolvedEngineParameters:
    codec = IMAGE_CODECS.get(request.output_ext)
    rate_control = _rate_control(request, codec) if codec else []
    filters = [f for f in (scale_filter(request.scale, fast=False),) if f]
    return ResolvedEngineParameters(rate_control=rate_control, filters=filters)


def _resolve_gif(request: ConversionRequest) -> ResolvedEngineParameters:
    filters = []
    if request.input_category == MediaCategory.VIDEO:
        speed = speed_filter(request.playback_speed)
        if speed:
            filters.append(speed)
    return ResolvedEngineParameters(
        filters=filters,
        palette_size=gif_palette_size(request.quality),
        dither=gif_dither(request.quality),
    )


def resolve(request: ConversionRequest) -> ResolvedEngineParameters:
    """Resolve a request's knobs into concrete engine parameters.

    Knobs that do not apply to the output (fps for audio, sample rate for
    video, playback speed outside GIF output) are ignored.
    """
    if request.is_gif:
        return _resolve_gif(request)
    if request.output_category == MediaCategory.VIDEO:
        return _resolve_video(request)
    if request.output_category == MediaCategory.AUDIO:
        return _resolve_audio(request)
    return _resolve_image(request)
