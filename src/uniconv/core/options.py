"""Conversion options and the validated conversion request."""

import math
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from uniconv.core.errors import InvalidOption
from uniconv.io.formats import MediaCategory, classify, normalize_extension


class QualityLevel(str, Enum):
    """Three-point quality scale shown to users."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: "QualityLevel | str | None") -> "QualityLevel | None":
        """Parse a quality label, accepting the legacy Korean labels too.

        Args:
            value: "low"/"medium"/"high" (any case), "낮음"/"보통"/"높음", or None

        Returns:
            QualityLevel or None when no quality was given

        Raises:
            InvalidOption: Unknown label
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip()
        if not text:
            return None
        level = _QUALITY_ALIASES.get(text.lower())
        if level is None:
            raise InvalidOption(f"Unknown quality level: '{value}'")
        return level


_QUALITY_ALIASES = {
    "low": QualityLevel.LOW,
    "medium": QualityLevel.MEDIUM,
    "high": QualityLevel.HIGH,
    "낮음": QualityLevel.LOW,
    "보통": QualityLevel.MEDIUM,
    "높음": QualityLevel.HIGH,
}

_RESOLUTION_RE = re.compile(r"^(-?\d+)\s*[x:*]\s*(-?\d+)$")
_HEIGHT_SHORTHAND_RE = re.compile(r"^(\d+)p$")
_BITRATE_RE = re.compile(r"^(\d+(?:\.\d+)?)([km]?)$")
_CODEC_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

# Values accepted by ffmpeg's scale filter to keep the aspect ratio
_KEEP_ASPECT = (-1, -2)


def parse_resolution(value: str | None) -> tuple[int, int] | None:
    """Parse a resolution knob.

    Args:
        value: "1280x720", "1280:720", "720p", "original" or None

    Returns:
        (width, height), or None for "original" (no scaling)

    Raises:
        InvalidOption: Malformed resolution
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("", "original"):
        return None

    shorthand = _HEIGHT_SHORTHAND_RE.match(text)
    if shorthand:
        height = int(shorthand.group(1))
        if height <= 0:
            raise InvalidOption(f"Invalid resolution: '{value}'")
        return (-2, height)

    match = _RESOLUTION_RE.match(text)
    if not match:
        raise InvalidOption(f"Invalid resolution: '{value}' (expected WxH or 'original')")

    width, height = int(match.group(1)), int(match.group(2))
    for dim in (width, height):
        if dim <= 0 and dim not in _KEEP_ASPECT:
            raise InvalidOption(f"Invalid resolution: '{value}'")
    if width < 0 and height < 0:
        raise InvalidOption(f"Invalid resolution: '{value}' (only one side may be automatic)")
    return (width, height)


def parse_bitrate(token: str) -> int:
    """Parse a bitrate token such as '2000k', '2.5M' or '128000'.

    Returns:
        Bits per second

    Raises:
        InvalidOption: Malformed or non-positive bitrate
    """
    match = _BITRATE_RE.match(str(token).strip().lower())
    if not match:
        raise InvalidOption(f"Invalid bitrate: '{token}'")
    number = float(match.group(1))
    multiplier = {"": 1, "k": 1000, "m": 1000_000}[match.group(2)]
    bits = int(number * multiplier)
    if bits <= 0:
        raise InvalidOption(f"Invalid bitrate: '{token}'")
    return bits


def format_bitrate(bits: int) -> str:
    """Format bits per second as an ffmpeg bitrate token."""
    if bits % 1000 == 0:
        return f"{bits // 1000}k"
    return str(bits)


class ConversionOptions(BaseModel):
    """User-facing conversion knobs, all optional.

    Knobs that do not apply to the chosen output are ignored later on,
    so a UI can send whatever state it currently holds.
    """

    resolution: str | None = None
    fps: int | None = None
    bitrate: str | None = None
    quality: QualityLevel | None = None
    sample_rate: int | None = None
    channels: int | None = None
    codec: str | None = None
    playback_speed: float | None = None

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        # Form submissions send empty strings for untouched fields
        if isinstance(data, dict):
            aliases = {"sampleRate": "sample_rate", "playbackSpeed": "playback_speed"}
            cleaned = {}
            for key, value in data.items():
                key = aliases.get(key, key)
                cleaned[key] = None if isinstance(value, str) and not value.strip() else value
            return cleaned
        return data

    @field_validator("quality", mode="before")
    @classmethod
    def _parse_quality(cls, value):
        return QualityLevel.parse(value)

    @field_validator("resolution")
    @classmethod
    def _check_resolution(cls, value):
        parse_resolution(value)
        return value.strip() if value is not None else None

    @field_validator("bitrate")
    @classmethod
    def _check_bitrate(cls, value):
        if value is not None:
            parse_bitrate(value)
            return value.strip()
        return value

    @field_validator("fps", "sample_rate")
    @classmethod
    def _positive(cls, value):
        if value is not None and value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("channels")
    @classmethod
    def _check_channels(cls, value):
        if value is not None and value not in (1, 2):
            raise ValueError("must be 1 (mono) or 2 (stereo)")
        return value

    @field_validator("codec")
    @classmethod
    def _check_codec(cls, value):
        if value is not None and not _CODEC_RE.match(value.strip()):
            raise ValueError(f"invalid codec name '{value}'")
        return value.strip() if value is not None else None

    @field_validator("playback_speed")
    @classmethod
    def _check_speed(cls, value):
        if value is not None and (not math.isfinite(value) or value <= 0):
            raise ValueError("must be a positive finite number")
        return value

    @property
    def scale(self) -> tuple[int, int] | None:
        return parse_resolution(self.resolution)

    @classmethod
    def build(cls, data: "ConversionOptions | dict | None" = None, **overrides) -> "ConversionOptions":
        """Validate options, raising InvalidOption instead of ValidationError."""
        if isinstance(data, ConversionOptions):
            data = data.model_dump(exclude_none=True)
        merged = {**(data or {}), **{k: v for k, v in overrides.items() if v is not None}}
        try:
            return cls.model_validate(merged)
        except ValidationError as e:
            raise InvalidOption(_describe_validation_error(e), detail=str(e)) from e


class ConversionRequest(ConversionOptions):
    """A complete, validated description of one conversion."""

    input_ext: str
    output_ext: str
    input_category: MediaCategory
    output_category: MediaCategory

    @classmethod
    def create(
        cls,
        input_ext: str,
        output_ext: str,
        options: ConversionOptions | dict | None = None,
    ) -> "ConversionRequest":
        """Create a request from extensions and options.

        The caller is expected to have validated the format pair with
        ``validate_conversion`` already.

        Raises:
            InvalidOption: Malformed option value
        """
        if isinstance(options, ConversionOptions):
            options = options.model_dump(exclude_none=True)
        input_ext = normalize_extension(input_ext)
        output_ext = normalize_extension(output_ext)
        data = {
            **(options or {}),
            "input_ext": input_ext,
            "output_ext": output_ext,
            "input_category": classify(input_ext),
            "output_category": classify(output_ext),
        }
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidOption(_describe_validation_error(e), detail=str(e)) from e

    @property
    def is_gif(self) -> bool:
        return self.output_ext == "gif"

    @property
    def options(self) -> ConversionOptions:
        return ConversionOptions.model_validate(
            self.model_dump(
                exclude={"input_ext", "output_ext", "input_category", "output_category"},
                exclude_none=True,
            )
        )


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ())) or "options"
        message = item.get("msg", "invalid value")
        # Drop pydantic's "Value error, " prefix
        message = message.removeprefix("Value error, ")
        parts.append(f"{field}: {message}")
    return "Invalid option: " + "; ".join(parts)
