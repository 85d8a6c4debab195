"""uniconv CLI - Convert video, audio, images and PDFs."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from uniconv import __version__
from uniconv.core.errors import ConfigurationError, ConversionError
from uniconv.estimates import format_size

app = typer.Typer(
    name="uniconv",
    help="Convert video, audio, images and PDF documents.",
    no_args_is_help=True,
)
pdf_app = typer.Typer(help="PDF operations: build from images, merge, extract a page.")
app.add_typer(pdf_app, name="pdf")

console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    level = os.environ.get("UNICONV_LOG_LEVEL") or ("DEBUG" if verbose else "WARNING")
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool):
    if value:
        console.print(f"uniconv version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[bool, typer.Option("-v", "--verbose", help="Verbose output")] = False,
    config: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="Settings YAML file")
    ] = None,
    profile: Annotated[
        Optional[str], typer.Option("--profile", help="Deployment profile (serverless, self-hosted)")
    ] = None,
):
    """uniconv - A toolkit for media and document conversion."""
    _configure_logging(verbose)
    ctx.obj = {"config": config, "profile": profile, "verbose": verbose}


@contextmanager
def _handle_errors(ctx: typer.Context) -> Iterator[None]:
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    try:
        yield
    except ConversionError as e:
        console.print(f"[red]Error:[/red] {escape(e.user_message)}")
        console.print(f"  {escape(e.message)}", style="dim")
        if verbose and e.detail:
            console.print(escape(e.detail[-2000:]), style="dim")
        raise typer.Exit(1)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _settings(ctx: typer.Context):
    from uniconv.config.loader import load_settings

    obj = ctx.obj or {}
    return load_settings(obj.get("config"), obj.get("profile"))


def _converter(ctx: typer.Context):
    from uniconv.service import Converter

    return Converter(settings=_settings(ctx))


def _print_plan(invocations) -> None:
    for i, invocation in enumerate(invocations):
        console.print(f"  {i + 1}. [cyan]{invocation.label}[/cyan]")
        console.print(f"     {escape(invocation.command_line())}")


def _spinner() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    )


# ============================================================================
# Media conversion command
# ============================================================================


@app.command()
def convert(
    ctx: typer.Context,
    input_path: Annotated[
        Path, typer.Argument(help="Input file", exists=True, dir_okay=False)
    ],
    output: Annotated[Optional[Path], typer.Option("-o", "--output", help="Output file")] = None,
    to: Annotated[
        Optional[str], typer.Option("--to", "-t", help="Output format (e.g. mp4, mp3, gif)")
    ] = None,
    resolution: Annotated[
        Optional[str], typer.Option("--resolution", "-r", help="WxH, 720p or 'original'")
    ] = None,
    fps: Annotated[Optional[int], typer.Option("--fps", help="Frame rate")] = None,
    bitrate: Annotated[Optional[str], typer.Option("--bitrate", "-b", help="e.g. 2000k")] = None,
    quality: Annotated[
        Optional[str], typer.Option("--quality", "-q", help="low, medium or high")
    ] = None,
    sample_rate: Annotated[
        Optional[int], typer.Option("--sample-rate", help="Audio sample rate (Hz)")
    ] = None,
    channels: Annotated[Optional[int], typer.Option("--channels", help="1 or 2")] = None,
    codec: Annotated[Optional[str], typer.Option("--codec", help="Encoder override")] = None,
    speed: Annotated[
        Optional[float], typer.Option("--speed", help="Playback speed for GIF output")
    ] = None,
    preset: Annotated[Optional[str], typer.Option("--preset", "-p", help="Preset name or file")] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show what would happen")] = False,
):
    """Convert a video, audio or image file to another format.

    Video can also be converted to audio (track extraction), to a still
    image (first frame) or to an animated GIF.
    """
    from uniconv.core.options import ConversionOptions
    from uniconv.pipeline.convert import plan_conversion, prepare_request

    with _handle_errors(ctx):
        base = None
        if preset:
            from uniconv.config.loader import load_preset_by_name

            preset_config = load_preset_by_name(preset)
            base = preset_config.options
            to = to or preset_config.output_format

        options = ConversionOptions.build(
            base,
            resolution=resolution,
            fps=fps,
            bitrate=bitrate,
            quality=quality,
            sample_rate=sample_rate,
            channels=channels,
            codec=codec,
            playback_speed=speed,
        )
        if output is not None and to is None:
            to = output.suffix.lstrip(".") or None

        request = prepare_request(input_path.name, to, options)
        if output is None:
            output = input_path.parent / f"{input_path.stem}_converted.{request.output_ext}"

        if dry_run:
            console.print(f"Would convert {input_path} -> {output}")
            _print_plan(plan_conversion(request, _settings(ctx)))
            return

        with _converter(ctx) as converter, _spinner() as progress:
            progress.add_task(
                f"Converting {request.input_ext} to {request.output_ext}...", total=None
            )
            result = converter.convert_media(
                input_path.read_bytes(), request.input_ext, request.output_ext, options
            )

        output.write_bytes(result.data)

    console.print(f"[green]Created:[/green] {output} ({format_size(result.size)})")


# ============================================================================
# GIF from images command
# ============================================================================


@app.command()
def gif(
    ctx: typer.Context,
    images: Annotated[
        list[Path], typer.Argument(help="Still images, in frame order", exists=True, dir_okay=False)
    ],
    output: Annotated[Path, typer.Option("-o", "--output", help="Output GIF")] = Path("output.gif"),
    fps: Annotated[Optional[int], typer.Option("--fps", help="Frames per second")] = None,
    quality: Annotated[
        Optional[str], typer.Option("--quality", "-q", help="low, medium or high")
    ] = None,
    size: Annotated[
        Optional[str], typer.Option("--size", "-s", help="Canvas WxH (default: first image)")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show what would happen")] = False,
):
    """Assemble still images into a looping animated GIF."""
    with _handle_errors(ctx):
        data = [path.read_bytes() for path in images]

        if dry_run:
            from uniconv.pipeline.gif import plan_images_to_gif

            settings = _settings(ctx)
            plan, _ = plan_images_to_gif(data, settings, fps, quality, size, settings.gif_optimize)
            console.print(f"Would build {output} from {len(images)} images")
            _print_plan(plan.stages)
            return

        with _converter(ctx) as converter, _spinner() as progress:
            progress.add_task(f"Building GIF from {len(images)} images...", total=None)
            result = converter.images_to_gif(data, fps=fps, quality=quality, size=size)

        output.write_bytes(result.data)

    console.print(f"[green]Created:[/green] {output} ({format_size(result.size)})")


# ============================================================================
# PDF commands
# ============================================================================


def _run_pdf(ctx: typer.Context, operation: str, files: list[Path], output: Path | None, page=None):
    from uniconv.pdf.operations import dispatch

    with _handle_errors(ctx):
        result = dispatch(operation, [path.read_bytes() for path in files], page)
        output = output or Path.cwd() / result.filename
        output.write_bytes(result.data)

    console.print(f"[green]Created:[/green] {output} ({format_size(result.size)})")


@pdf_app.command("images")
def pdf_images(
    ctx: typer.Context,
    images: Annotated[
        list[Path], typer.Argument(help="JPG or PNG images, in page order", exists=True)
    ],
    output: Annotated[Optional[Path], typer.Option("-o", "--output", help="Output PDF")] = None,
):
    """Build a PDF with one page per image."""
    _run_pdf(ctx, "images", images, output)


@pdf_app.command("merge")
def pdf_merge(
    ctx: typer.Context,
    documents: Annotated[list[Path], typer.Argument(help="PDFs to merge, in order", exists=True)],
    output: Annotated[Optional[Path], typer.Option("-o", "--output", help="Output PDF")] = None,
):
    """Merge two or more PDFs."""
    _run_pdf(ctx, "merge", documents, output)


@pdf_app.command("extract")
def pdf_extract(
    ctx: typer.Context,
    document: Annotated[Path, typer.Argument(help="Source PDF", exists=True, dir_okay=False)],
    page: Annotated[int, typer.Option("--page", "-p", help="Page number (1-based)")] = 1,
    output: Annotated[Optional[Path], typer.Option("-o", "--output", help="Output PDF")] = None,
):
    """Extract a single page into a new PDF."""
    _run_pdf(ctx, "extract", [document], output, page)


# ============================================================================
# Information commands
# ============================================================================


@app.command()
def formats():
    """List supported input and output formats."""
    from uniconv.io.formats import list_supported_formats

    table = Table(title="Supported Formats")
    table.add_column("Category", style="cyan")
    table.add_column("Input")
    table.add_column("Output")

    for category, lists in list_supported_formats().items():
        table.add_row(category, ", ".join(lists["input"]), ", ".join(lists["output"]))

    console.print(table)


@app.command()
def check(
    input_format: Annotated[str, typer.Argument(help="Input extension or filename")],
    output_format: Annotated[str, typer.Argument(help="Output extension")],
):
    """Check whether a conversion between two formats is supported."""
    from uniconv.io.formats import is_supported_conversion, normalize_extension

    src, dst = normalize_extension(input_format), normalize_extension(output_format)
    if is_supported_conversion(src, dst):
        console.print(f"[green]Supported:[/green] {src} -> {dst}")
        return

    console.print(f"[red]Not supported:[/red] {src} -> {dst}")
    raise typer.Exit(1)


@app.command()
def backends():
    """List available engine backends."""
    from uniconv.engine import list_backends

    table = Table(title="Engine Backends")
    table.add_column("Name", style="cyan")
    table.add_column("Description")

    for name, description in list_backends():
        table.add_row(name, description)

    console.print(table)


@app.command("presets")
def list_presets(
    presets_dir: Annotated[
        Optional[Path], typer.Option("--dir", help="Presets directory (default: ./presets)")
    ] = None,
):
    """List available presets in the presets directory."""
    from uniconv.config.loader import list_available_presets, load_preset_by_name

    names = list_available_presets(presets_dir)

    if not names:
        console.print("No presets found in presets/ directory")
        return

    table = Table(title="Available Presets")
    table.add_column("Name", style="cyan")
    table.add_column("Output")
    table.add_column("Description")

    for name in names:
        preset = load_preset_by_name(name, presets_dir)
        table.add_row(name, preset.output_format or "-", preset.description)

    console.print(table)


@app.command()
def estimate(
    input_path: Annotated[
        Path, typer.Argument(help="Input file", exists=True, dir_okay=False)
    ],
    to: Annotated[Optional[str], typer.Option("--to", "-t", help="Output format")] = None,
    resolution: Annotated[Optional[str], typer.Option("--resolution", "-r")] = None,
    fps: Annotated[Optional[int], typer.Option("--fps")] = None,
    quality: Annotated[Optional[str], typer.Option("--quality", "-q")] = None,
    speed: Annotated[Optional[float], typer.Option("--speed")] = None,
):
    """Estimate output size and media duration before converting."""
    from uniconv.estimates import estimate_duration_seconds, estimate_output_size, format_duration
    from uniconv.io.formats import classify, default_output_format

    category = classify(input_path)
    if category is None:
        console.print(f"[red]Error:[/red] Unsupported input format: {input_path.suffix}")
        raise typer.Exit(1)

    output_ext = (to or default_output_format(category)).lower().lstrip(".")
    size = input_path.stat().st_size
    try:
        seconds = estimate_duration_seconds(size, category, speed, resolution, quality)
        estimated = estimate_output_size(size, category, output_ext, resolution, fps, quality)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[bold]{input_path.name}[/bold] -> {output_ext}")
    console.print(f"  Input size: {format_size(size)}")
    console.print(f"  Estimated output: {format_size(estimated)}")
    console.print(f"  Estimated duration: {format_duration(seconds)}")


if __name__ == "__main__":
    app()
