"""Error taxonomy for conversions.

Every failure surfaced by the toolkit is a :class:`ConversionError` carrying
an :class:`ErrorKind`. Engine failures are classified once, at the invoker
boundary, by matching known fragments of the engine's diagnostic output.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Categories of conversion failure."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_OPTION = "invalid_option"
    ENGINE_TIMEOUT = "engine_timeout"
    UNSUPPORTED_CODEC_COMBINATION = "unsupported_codec_combination"
    CORRUPT_INPUT = "corrupt_input"
    EMPTY_OUTPUT = "empty_output"
    ENGINE_FAILURE = "engine_failure"


USER_MESSAGES = {
    ErrorKind.UNSUPPORTED_FORMAT: "This file format is not supported.",
    ErrorKind.INVALID_OPTION: "Invalid conversion settings. Please check the options.",
    ErrorKind.ENGINE_TIMEOUT: "The conversion took too long. Try a smaller file.",
    ErrorKind.UNSUPPORTED_CODEC_COMBINATION: (
        "This codec combination is not supported. Try a different output format."
    ),
    ErrorKind.CORRUPT_INPUT: "The file may be corrupted. Try a different file.",
    ErrorKind.EMPTY_OUTPUT: "The conversion produced no output.",
    ErrorKind.ENGINE_FAILURE: "The conversion failed.",
}


class ConversionError(Exception):
    """Base class for all conversion failures.

    Attributes:
        kind: Failure category
        detail: Raw diagnostic text (engine stderr, library message)
    """

    kind: ErrorKind = ErrorKind.ENGINE_FAILURE

    def __init__(self, message: str, detail: str = "", user_message: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        """Message suitable for showing to an end user."""
        return self._user_message or USER_MESSAGES[self.kind]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "detail": self.detail,
        }


class UnsupportedFormat(ConversionError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class InvalidOption(ConversionError, ValueError):
    kind = ErrorKind.INVALID_OPTION


class InputTooLarge(InvalidOption):
    """Input exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Input is {size} bytes, limit is {limit} bytes",
            user_message=f"The file is too large. Maximum size is {limit / (1024 * 1024):.0f}MB.",
        )
        self.size = size
        self.limit = limit


class EngineTimeout(ConversionError):
    kind = ErrorKind.ENGINE_TIMEOUT


class UnsupportedCodecCombination(ConversionError):
    kind = ErrorKind.UNSUPPORTED_CODEC_COMBINATION


class CorruptInput(ConversionError):
    kind = ErrorKind.CORRUPT_INPUT


class EmptyOutput(ConversionError):
    kind = ErrorKind.EMPTY_OUTPUT


class EngineFailure(ConversionError):
    kind = ErrorKind.ENGINE_FAILURE


class ConfigurationError(Exception):
    """Raised when the converter is misconfigured (missing engine, bad table)."""


class UnknownCodecError(ConfigurationError, KeyError):
    """No quality table exists for a codec."""

    def __init__(self, codec: str, container: str = "*"):
        super().__init__(f"No quality table for codec '{codec}' (container '{container}')")
        self.codec = codec
        self.container = container

    def __str__(self) -> str:
        return self.args[0]


# Ordered: first match wins.
_DIAGNOSTIC_PATTERNS: list[tuple[str, type[ConversionError], str | None]] = [
    ("Could not find tag for codec", UnsupportedCodecCombination, None),
    ("not currently supported in container", UnsupportedCodecCombination, None),
    ("Invalid data found when processing input", CorruptInput, None),
    ("moov atom not found", CorruptInput, None),
    ("Invalid data found", CorruptInput, None),
    ("No such file or directory", EngineFailure, "The input file could not be found."),
    ("Permission denied", EngineFailure, "The file could not be accessed."),
    ("Invalid argument", EngineFailure, "Invalid conversion settings. Please check the options."),
]


def classify_engine_failure(stderr: str, returncode: int | None = None) -> ConversionError:
    """Map engine diagnostic text to a classified error.

    Args:
        stderr: Captured standard error of the failed engine run
        returncode: Exit status, included in the message when known

    Returns:
        A ConversionError subclass instance (not raised)
    """
    status = f" (exit status {returncode})" if returncode is not None else ""
    for fragment, error_cls, user_message in _DIAGNOSTIC_PATTERNS:
        if fragment in stderr:
            return error_cls(
                f"Engine failed{status}: {fragment}",
                detail=stderr,
                user_message=user_message,
            )
    return EngineFailure(f"Conversion failed{status}", detail=stderr)
