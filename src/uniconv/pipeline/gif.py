"""GIF generation: per-frame preparation, shared palette, palette application.

Both entry points reduce their input to the same numbered PNG frame
sequence, so palette generation and application are shared.
"""

import io
import logging
from typing import Sequence

from PIL import Image, ImageSequence, UnidentifiedImageError

from uniconv.config.schema import ConverterSettings
from uniconv.core import command
from uniconv.core.command import GifPlan
from uniconv.core.errors import EngineFailure, InvalidOption, UnsupportedFormat
from uniconv.core.options import ConversionRequest, QualityLevel, parse_resolution
from uniconv.core.quality import ResolvedEngineParameters, gif_dither, gif_palette_size
from uniconv.engine.invoker import ConversionResult, EngineInvoker
from uniconv.io.formats import SUPPORTED_FORMATS, MediaCategory

logger = logging.getLogger(__name__)

# Pillow format name -> extension handed to the engine
PILLOW_EXTENSIONS = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "BMP": "bmp",
    "TIFF": "tiff",
}


def probe_image(data: bytes) -> tuple[str, tuple[int, int]]:
    """Identify a still image.

    Args:
        data: Encoded image bytes

    Returns:
        (extension, (width, height))

    Raises:
        UnsupportedFormat: Not an image, or not an accepted still format
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt, size = img.format, img.size
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedFormat("Unrecognized image data", detail=str(e)) from e

    ext = PILLOW_EXTENSIONS.get(fmt or "")
    if ext is None or ext not in SUPPORTED_FORMATS[MediaCategory.IMAGE]["input"]:
        raise UnsupportedFormat(f"Unsupported image format for GIF frames: {fmt}")
    return ext, size


def limit_color_table(data: bytes, palette_size: int) -> bytes:
    """Re-encode a GIF so its color table holds at most ``palette_size`` entries.

    ffmpeg's GIF muxer always declares a 256-entry global table. The
    generated palette occupies its leading entries, so every frame is
    remapped onto those without dithering, which keeps already-paletted
    pixels unchanged. Frame durations and the loop count carry over.

    Raises:
        EngineFailure: The engine output is not a readable GIF
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "GIF":
                raise EngineFailure(f"Engine produced {img.format} data instead of a GIF")
            colors = (img.getpalette() or [])[: palette_size * 3]
            loop = img.info.get("loop", 0)
            frames, durations = [], []
            for frame in ImageSequence.Iterator(img):
                frames.append(frame.convert("RGB"))
                durations.append(frame.info.get("duration", 0))
    except (UnidentifiedImageError, OSError) as e:
        raise EngineFailure("Engine produced an unreadable GIF", detail=str(e)) from e

    palette = Image.new("P", (1, 1))
    palette.putpalette(colors)
    remapped = [frame.quantize(palette=palette, dither=Image.Dither.NONE) for frame in frames]

    buf = io.BytesIO()
    remapped[0].save(
        buf,
        format="GIF",
        save_all=True,
        append_images=remapped[1:],
        duration=durations,
        loop=loop,
        optimize=False,
    )
    logger.debug("GIF color table limited to %d entries (%d frames)", palette_size, len(frames))
    return buf.getvalue()


def _check_fps(fps: int) -> int:
    if isinstance(fps, bool) or not isinstance(fps, int) or fps <= 0:
        raise InvalidOption(f"Invalid frame rate: {fps!r}")
    return fps


def run_plan(
    invoker: EngineInvoker,
    plan: GifPlan,
    inputs: dict[str, bytes],
    timeout: float | None = None,
) -> ConversionResult:
    """Execute every stage of a GIF plan in one working directory.

    Each stage's output is verified before the next one starts; the working
    directory (frames, palette, intermediates) is removed afterwards.
    """
    with invoker.session(timeout) as session:
        for name, data in inputs.items():
            session.write(name, data)
        for stage in plan.stages:
            session.run(stage)
        data = session.read(plan.output)
        elapsed = session.elapsed

    # gifsicle --colors already writes a table of the palette size
    if plan.optimize is None:
        data = limit_color_table(data, plan.palette_size)

    logger.info("GIF ready: %d stages, %d bytes, %.2fs", len(plan.stages), len(data), elapsed)
    return ConversionResult(data=data, size=len(data), output_ext="gif", elapsed=elapsed)


def optimize_enabled(invoker: EngineInvoker) -> bool:
    """Whether the gifsicle pass should run for this invoker."""
    if not invoker.settings.gif_optimize:
        return False
    if not invoker.has_tool("gifsicle"):
        logger.warning("gif_optimize is set but no gifsicle engine is configured; skipping")
        return False
    return True


def plan_video_to_gif(
    request: ConversionRequest,
    params: ResolvedEngineParameters,
    settings: ConverterSettings,
    optimize: bool = False,
) -> GifPlan:
    return command.plan_video_gif(
        request,
        params,
        fps=request.fps or settings.gif_fps,
        optimize=optimize,
        timeout=settings.timeout_seconds,
        max_buffer=settings.max_buffer_bytes,
    )


def video_to_gif(
    invoker: EngineInvoker,
    data: bytes,
    request: ConversionRequest,
    params: ResolvedEngineParameters,
) -> ConversionResult:
    """Convert a video (or animated GIF) to a palette-optimized looping GIF."""
    plan = plan_video_to_gif(request, params, invoker.settings, optimize_enabled(invoker))
    inputs = {command.input_name(request.input_ext): data}
    return run_plan(invoker, plan, inputs)


def plan_images_to_gif(
    images: Sequence[bytes],
    settings: ConverterSettings,
    fps: int | None = None,
    quality: QualityLevel | str | None = None,
    size: str | None = None,
    optimize: bool = False,
) -> tuple[GifPlan, dict[str, bytes]]:
    """Plan a still-image sequence to GIF conversion.

    Args:
        images: Encoded still images, in frame order
        settings: Limits and the default frame rate
        fps: Frames per second (defaults to settings.gif_fps)
        quality: Quality level driving palette size and dithering
        size: Canvas override ("WxH", "W:-2", ...); default is the first
            image's dimensions
        optimize: Append the gifsicle pass

    Returns:
        (plan, working-directory inputs)

    Raises:
        InvalidOption: No images, or bad fps/size
        UnsupportedFormat: An input is not an accepted still image
    """
    if not images:
        raise InvalidOption("At least one image is required")
    fps = _check_fps(fps if fps is not None else settings.gif_fps)
    level = QualityLevel.parse(quality)

    probed = [probe_image(data) for data in images]
    exts = [ext for ext, _ in probed]
    canvas = command.canvas_size(probed[0][1], parse_resolution(size))
    logger.debug("GIF canvas %dx%d for %d images", canvas[0], canvas[1], len(images))

    plan = command.plan_images_gif(
        exts,
        canvas,
        fps,
        gif_palette_size(level),
        gif_dither(level),
        optimize=optimize,
        timeout=settings.timeout_seconds,
        max_buffer=settings.max_buffer_bytes,
    )
    inputs = {command.input_name(ext, i): data for i, (ext, data) in enumerate(zip(exts, images))}
    return plan, inputs


def images_to_gif(
    invoker: EngineInvoker,
    images: Sequence[bytes],
    fps: int | None = None,
    quality: QualityLevel | str | None = None,
    size: str | None = None,
) -> ConversionResult:
    """Assemble still images into a looping GIF, one frame per image."""
    plan, inputs = plan_images_to_gif(
        images, invoker.settings, fps, quality, size, optimize_enabled(invoker)
    )
    return run_plan(invoker, plan, inputs)
