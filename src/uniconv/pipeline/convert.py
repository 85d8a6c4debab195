"""Media conversion: validate, resolve, build, invoke."""

import logging

from uniconv.config.schema import ConverterSettings
from uniconv.core import command
from uniconv.core.command import EngineInvocation
from uniconv.core.options import ConversionOptions, ConversionRequest
from uniconv.core.quality import resolve
from uniconv.engine.invoker import ConversionResult, EngineInvoker
from uniconv.io.formats import (
    classify,
    default_output_format,
    normalize_extension,
    validate_conversion,
)
from uniconv.pipeline import gif

logger = logging.getLogger(__name__)


def prepare_request(
    input_ext: str,
    output_ext: str | None = None,
    options: ConversionOptions | dict | None = None,
) -> ConversionRequest:
    """Validate a format pair and options into a ConversionRequest.

    Args:
        input_ext: Input extension or filename
        output_ext: Output extension; defaults to the input category's default
        options: Conversion knobs

    Raises:
        UnsupportedFormat: Format pair not allowed
        InvalidOption: Malformed option
    """
    input_ext = normalize_extension(input_ext)
    if not output_ext:
        category = classify(input_ext)
        if category is not None:
            output_ext = default_output_format(category)
    output_ext = normalize_extension(output_ext or "")

    validate_conversion(input_ext, output_ext)
    return ConversionRequest.create(input_ext, output_ext, options)


def plan_conversion(
    request: ConversionRequest,
    settings: ConverterSettings,
) -> list[EngineInvocation]:
    """List the engine invocations a conversion would run, without running them."""
    params = resolve(request)
    if request.is_gif:
        return gif.plan_video_to_gif(request, params, settings, settings.gif_optimize).stages
    return [command.build(request, params, settings.timeout_seconds, settings.max_buffer_bytes)]


def convert_media(
    invoker: EngineInvoker,
    data: bytes,
    input_ext: str,
    output_ext: str | None = None,
    options: ConversionOptions | dict | None = None,
) -> ConversionResult:
    """Convert media bytes from one format to another.

    Args:
        invoker: Engine invoker to run the conversion with
        data: Input file bytes
        input_ext: Input extension or filename (e.g. 'clip.mov')
        output_ext: Target extension; defaults per input category
        options: Conversion knobs (dict or ConversionOptions)

    Returns:
        ConversionResult with the converted bytes

    Raises:
        ConversionError: Validation or engine failure
    """
    request = prepare_request(input_ext, output_ext, options)
    params = resolve(request)
    logger.info(
        "Converting %s -> %s (%d bytes, quality=%s)",
        request.input_ext,
        request.output_ext,
        len(data),
        request.quality.value if request.quality else "default",
    )

    if request.is_gif:
        return gif.video_to_gif(invoker, data, request, params)

    settings = invoker.settings
    invocation = command.build(request, params, settings.timeout_seconds, settings.max_buffer_bytes)
    return invoker.invoke(invocation, {command.input_name(request.input_ext): data})
