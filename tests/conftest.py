"""Shared fixtures: a recording fake engine and in-memory media samples."""

import io
from pathlib import Path

import pytest
from PIL import Image
from pypdf import PdfWriter

from uniconv.config.schema import ConverterSettings
from uniconv.engine.base import EngineRun, TranscodeEngine
from uniconv.engine.invoker import EngineInvoker


class FakeEngine(TranscodeEngine):
    """Records every run and writes a stand-in output file.

    The output file is the last argument, which is where every builder
    puts it. A frame pattern is written as its first frame.
    """

    name = "fake"

    def __init__(
        self,
        returncode: int = 0,
        stderr: str = "",
        output: bytes = b"fake-output",
        write_output: bool = True,
        program_name: str = "ffmpeg",
    ):
        self.returncode = returncode
        self.stderr = stderr
        self.output = output
        self.write_output = write_output
        self.program_name = program_name
        self.calls: list[dict] = []
        self.closed = 0

    def run(self, args, workdir, timeout, max_buffer):
        workdir = Path(workdir)
        self.calls.append(
            {
                "args": list(args),
                "workdir": workdir,
                "timeout": timeout,
                "files": sorted(p.name for p in workdir.iterdir()),
            }
        )
        if self.returncode == 0 and self.write_output:
            target = args[-1]
            if "%" in target:
                target = target % 0
            (workdir / target).write_bytes(self.output)
        return EngineRun(returncode=self.returncode, stderr=self.stderr, elapsed=0.01)

    def close(self):
        self.closed += 1

    @property
    def outputs(self) -> list[str]:
        return [call["args"][-1] for call in self.calls]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def settings():
    return ConverterSettings()


@pytest.fixture
def invoker(fake_engine, settings):
    return EngineInvoker(fake_engine, settings)


@pytest.fixture
def make_image():
    """Factory for encoded still images."""

    def _make(fmt: str = "PNG", size=(64, 48), color=(255, 0, 0)) -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", size, color).save(buf, fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def make_pdf():
    """Factory for PDFs with blank pages of the given (width, height) sizes."""

    def _make(*sizes) -> bytes:
        writer = PdfWriter()
        for width, height in sizes or [(100, 100)]:
            writer.add_blank_page(width=width, height=height)
        buf = io.BytesIO()
        writer.write(buf)
        return buf.getvalue()

    return _make


@pytest.fixture
def make_engine():
    """Factory for FakeEngine instances with custom behaviour."""
    return FakeEngine


def _wide_palette() -> list[int]:
    return [channel for i in range(256) for channel in (i, 255 - i, (i * 7) % 256)]


@pytest.fixture
def make_gif():
    """Factory for animated GIFs declaring a full 256-entry color table.

    Frame ``n`` is filled with palette index ``n``.
    """

    def _make(frames: int = 2, size=(16, 16), duration: int = 100) -> bytes:
        images = []
        for index in range(frames):
            img = Image.new("P", size, index)
            img.putpalette(_wide_palette())
            images.append(img)
        buf = io.BytesIO()
        images[0].save(
            buf,
            "GIF",
            save_all=True,
            append_images=images[1:],
            duration=duration,
            loop=0,
            optimize=False,
        )
        return buf.getvalue()

    return _make


@pytest.fixture
def gif_engine(make_gif):
    """FakeEngine whose stand-in output is a decodable GIF."""
    return FakeEngine(output=make_gif())


@pytest.fixture
def gif_invoker(gif_engine, settings):
    return EngineInvoker(gif_engine, settings)
