"""Engine command construction.

Builders here only produce argument lists; they never touch the filesystem
or run anything, so the same invocation can be executed by a native ffmpeg
process or a WebAssembly build. File names are relative to the working
directory the invoker runs the engine in.
"""

import shlex
from dataclasses import dataclass, field

from uniconv.core.options import ConversionRequest
from uniconv.core.quality import ResolvedEngineParameters
from uniconv.io.formats import MediaCategory

DEFAULT_TIMEOUT = 300.0
DEFAULT_MAX_BUFFER = 50 * 1024 * 1024

FRAME_PATTERN = "frame_%05d.png"
PALETTE_NAME = "palette.png"
GIF_OUTPUT = "output.gif"
GIF_OPTIMIZED = "optimized.gif"

FASTSTART_CONTAINERS = ("mp4", "mov", "m4v", "3gp")
AUDIO_CONTAINER_FORMATS = {"m4a": "mp4", "aac": "adts"}


@dataclass(frozen=True)
class EngineInvocation:
    """One engine run: arguments, expected output and limits.

    Attributes:
        args: Ordered arguments, without the program name
        output: Output file name the run must produce
        timeout: Wall-clock budget in seconds
        max_buffer: Maximum bytes of output/diagnostics to keep
        label: Short stage name for logs
        program: None for the transcoding engine, else an external tool name
    """

    args: tuple[str, ...]
    output: str
    timeout: float = DEFAULT_TIMEOUT
    max_buffer: int = DEFAULT_MAX_BUFFER
    label: str = "convert"
    program: str | None = None

    def command_line(self, program: str = "ffmpeg") -> str:
        return shlex.join([self.program or program, *self.args])


@dataclass
class GifPlan:
    """Ordered invocations making up a GIF conversion."""

    prepare: list[EngineInvocation] = field(default_factory=list)
    palette: EngineInvocation | None = None
    apply: EngineInvocation | None = None
    optimize: EngineInvocation | None = None
    palette_size: int = 256

    @property
    def stages(self) -> list[EngineInvocation]:
        stages = [*self.prepare, self.palette, self.apply]
        if self.optimize:
            stages.append(self.optimize)
        return [s for s in stages if s is not None]

    @property
    def output(self) -> str:
        return GIF_OPTIMIZED if self.optimize else GIF_OUTPUT


def input_name(ext: str, index: int | None = None) -> str:
    return f"input.{ext}" if index is None else f"input_{index}.{ext}"


def output_name(ext: str) -> str:
    return f"output.{ext}"


def frame_name(index: int) -> str:
    return FRAME_PATTERN % index


def _base_args(*inputs: str) -> list[str]:
    args = ["-hide_banner", "-nostdin", "-y"]
    for name in inputs:
        args.extend(["-i", name])
    return args


def _container_args(output_ext: str, category: MediaCategory) -> list[str]:
    if category == MediaCategory.VIDEO and output_ext in FASTSTART_CONTAINERS:
        return ["-movflags", "+faststart"]
    if category == MediaCategory.AUDIO and output_ext in AUDIO_CONTAINER_FORMATS:
        return ["-f", AUDIO_CONTAINER_FORMATS[output_ext]]
    if category == MediaCategory.IMAGE:
        # Single still: first frame of a video, or the image itself
        return ["-frames:v", "1", "-update", "1"]
    return []


def build(
    request: ConversionRequest,
    params: ResolvedEngineParameters,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Build the single-pass invocation for a non-GIF conversion.

    Order: input, filter chain, frame rate, bitrate, quality, codec flags,
    container flags, output.

    Args:
        request: Validated conversion request (format pair already checked)
        params: Parameters resolved from the request
        timeout: Wall-clock budget in seconds
        max_buffer: Output buffer limit in bytes

    Returns:
        EngineInvocation reading input.<ext> and writing output.<ext>
    """
    category = request.output_category
    args = _base_args(input_name(request.input_ext))

    if category in (MediaCategory.VIDEO, MediaCategory.IMAGE) and params.filters:
        args.extend(["-vf", ",".join(params.filters)])

    if category == MediaCategory.VIDEO and request.fps:
        args.extend(["-r", str(request.fps)])

    args.extend(params.bitrate_args)
    args.extend(params.rate_control)

    if category == MediaCategory.VIDEO:
        args.extend(["-c:v", params.video_codec, *params.preset])
        if params.video_codec == "libx264":
            args.extend(["-pix_fmt", "yuv420p"])
        if params.audio_codec:
            args.extend(["-c:a", params.audio_codec])
    elif category == MediaCategory.AUDIO:
        args.extend(["-vn", "-c:a", params.audio_codec])
        if request.sample_rate:
            args.extend(["-ar", str(request.sample_rate)])
        if request.channels:
            args.extend(["-ac", str(request.channels)])
    else:
        args.append("-an")

    args.extend(_container_args(request.output_ext, category))
    args.append(output_name(request.output_ext))

    return EngineInvocation(
        args=tuple(args),
        output=output_name(request.output_ext),
        timeout=timeout,
        max_buffer=max_buffer,
        label=f"{request.input_ext}->{request.output_ext}",
    )


# ============================================================================
# GIF pipeline
# ============================================================================


def canvas_size(
    first_size: tuple[int, int] | None, override: tuple[int, int] | None = None
) -> tuple[int, int]:
    """Compute the common canvas all GIF frames are fitted onto.

    Args:
        first_size: (width, height) of the first input, if known
        override: Explicit (width, height); -1/-2 on one side keeps the
            first input's aspect ratio

    Returns:
        Even (width, height)

    Raises:
        ValueError: Neither size can be determined
    """
    if override and override[0] > 0 and override[1] > 0:
        width, height = override
    elif override and first_size:
        src_w, src_h = first_size
        if override[0] > 0:
            width = override[0]
            height = round(src_h * width / src_w)
        else:
            height = override[1]
            width = round(src_w * height / src_h)
    elif first_size:
        width, height = first_size
    else:
        raise ValueError("Canvas size unknown: first input size could not be read")
    return (max(2, width - width % 2), max(2, height - height % 2))


def fit_filters(canvas: tuple[int, int]) -> list[str]:
    """Aspect-preserving scale followed by centered padding."""
    width, height = canvas
    return [
        f"scale={width}:{height}:force_original_aspect_ratio=decrease:flags=lanczos",
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black",
    ]


def build_video_frames(
    request: ConversionRequest,
    params: ResolvedEngineParameters,
    fps: int,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Stage 1 for video input: decode, retime and normalize every frame."""
    filters = list(params.filters)
    filters.append(f"fps={fps}")
    size = request.scale
    if size and size[0] > 0 and size[1] > 0:
        filters.extend(fit_filters(size))
    elif size:
        filters.append(f"scale={size[0]}:{size[1]}:flags=lanczos")

    args = _base_args(input_name(request.input_ext))
    args.extend(["-vf", ",".join(filters), "-an", "-start_number", "0", FRAME_PATTERN])
    return EngineInvocation(
        args=tuple(args),
        output=frame_name(0),
        timeout=timeout,
        max_buffer=max_buffer,
        label="frames",
    )


def build_image_frame(
    index: int,
    ext: str,
    canvas: tuple[int, int],
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Stage 1 for still images: fit one image onto the canvas."""
    args = _base_args(input_name(ext, index))
    args.extend(["-vf", ",".join(fit_filters(canvas)), "-frames:v", "1", "-update", "1"])
    args.append(frame_name(index))
    return EngineInvocation(
        args=tuple(args),
        output=frame_name(index),
        timeout=timeout,
        max_buffer=max_buffer,
        label=f"frame {index}",
    )


def build_palette(
    fps: int,
    palette_size: int,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Stage 2: one shared palette computed over all prepared frames."""
    args = ["-hide_banner", "-nostdin", "-y", "-framerate", str(fps), "-start_number", "0"]
    args.extend(["-i", FRAME_PATTERN])
    args.extend(
        [
            "-vf",
            f"palettegen=max_colors={palette_size}:reserve_transparent=0:stats_mode=full",
            "-frames:v",
            "1",
            "-update",
            "1",
            PALETTE_NAME,
        ]
    )
    return EngineInvocation(
        args=tuple(args),
        output=PALETTE_NAME,
        timeout=timeout,
        max_buffer=max_buffer,
        label="palette",
    )


def build_palette_apply(
    fps: int,
    dither: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Stage 3: quantize every frame against the palette and write a looping GIF."""
    args = ["-hide_banner", "-nostdin", "-y", "-framerate", str(fps), "-start_number", "0"]
    args.extend(["-i", FRAME_PATTERN, "-i", PALETTE_NAME])
    args.extend(
        [
            "-lavfi",
            f"[0:v][1:v]paletteuse=dither={dither}",
            "-loop",
            "0",
            "-f",
            "gif",
            GIF_OUTPUT,
        ]
    )
    return EngineInvocation(
        args=tuple(args),
        output=GIF_OUTPUT,
        timeout=timeout,
        max_buffer=max_buffer,
        label="paletteuse",
    )


def build_gif_optimize(
    palette_size: int,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> EngineInvocation:
    """Optional stage 4: lossless cross-frame optimization with gifsicle."""
    args = ["--optimize=3", "--no-warnings", f"--colors={palette_size}", GIF_OUTPUT]
    args.extend(["-o", GIF_OPTIMIZED])
    return EngineInvocation(
        args=tuple(args),
        output=GIF_OPTIMIZED,
        timeout=timeout,
        max_buffer=max_buffer,
        label="gifsicle",
        program="gifsicle",
    )


def plan_video_gif(
    request: ConversionRequest,
    params: ResolvedEngineParameters,
    fps: int,
    optimize: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> GifPlan:
    """Plan a video (or animated GIF) to GIF conversion."""
    return GifPlan(
        prepare=[build_video_frames(request, params, fps, timeout, max_buffer)],
        palette=build_palette(fps, params.palette_size, timeout, max_buffer),
        apply=build_palette_apply(fps, params.dither, timeout, max_buffer),
        optimize=build_gif_optimize(params.palette_size, timeout, max_buffer) if optimize else None,
        palette_size=params.palette_size,
    )


def plan_images_gif(
    exts: list[str],
    canvas: tuple[int, int],
    fps: int,
    palette_size: int,
    dither: str,
    optimize: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> GifPlan:
    """Plan a still-image sequence to GIF conversion, one frame per image."""
    return GifPlan(
        prepare=[
            build_image_frame(i, ext, canvas, timeout, max_buffer) for i, ext in enumerate(exts)
        ],
        palette=build_palette(fps, palette_size, timeout, max_buffer),
        apply=build_palette_apply(fps, dither, timeout, max_buffer),
        optimize=build_gif_optimize(palette_size, timeout, max_buffer) if optimize else None,
        palette_size=palette_size,
    )
