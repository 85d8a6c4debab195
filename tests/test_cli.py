"""Tests for the command-line interface."""

import io
from pathlib import Path

import pytest
from pypdf import PdfReader, PdfWriter
from typer.testing import CliRunner

from uniconv import __version__
from uniconv.cli import app

PRESETS_DIR = Path(__file__).parent.parent / "presets"

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("UNICONV_CONFIG", "UNICONV_PROFILE", "UNICONV_BACKEND", "UNICONV_GIF_OPTIMIZE"):
        monkeypatch.delenv(name, raising=False)


def _write_pdf(path: Path, pages: int) -> Path:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=100, height=100)
    with open(path, "wb") as f:
        writer.write(f)
    return path


class TestInfoCommands:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_formats(self):
        result = runner.invoke(app, ["formats"])
        assert result.exit_code == 0
        assert "video" in result.output
        assert "audio" in result.output

    def test_check_supported(self):
        result = runner.invoke(app, ["check", "clip.mov", "gif"])
        assert result.exit_code == 0
        assert "Supported" in result.output

    def test_check_unsupported(self):
        result = runner.invoke(app, ["check", "mp3", "mp4"])
        assert result.exit_code == 1
        assert "Not supported" in result.output

    def test_backends(self):
        result = runner.invoke(app, ["backends"])
        assert result.exit_code == 0
        assert "process" in result.output
        assert "wasm" in result.output

    def test_presets(self):
        result = runner.invoke(app, ["presets", "--dir", str(PRESETS_DIR)])
        assert result.exit_code == 0
        assert "preview-gif" in result.output
        assert "podcast" in result.output

    def test_presets_empty(self, tmp_path):
        result = runner.invoke(app, ["presets", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No presets found" in result.output


class TestConvertDryRun:
    def test_gif_plan(self, tmp_path):
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"not really a video")
        result = runner.invoke(app, ["convert", str(source), "--to", "gif", "--speed", "2", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "frames" in result.output
        assert "palette" in result.output
        assert "paletteuse" in result.output
        assert not (tmp_path / "clip_converted.gif").exists()

    def test_single_stage_plan(self, tmp_path):
        source = tmp_path / "song.wav"
        source.write_bytes(b"RIFF")
        result = runner.invoke(app, ["convert", str(source), "-q", "high", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "wav->mp3" in result.output

    def test_unsupported_pair(self, tmp_path):
        source = tmp_path / "song.mp3"
        source.write_bytes(b"ID3")
        result = runner.invoke(app, ["convert", str(source), "--to", "mp4", "--dry-run"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_invalid_option(self, tmp_path):
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"x")
        result = runner.invoke(app, ["convert", str(source), "--channels", "5", "--dry-run"])
        assert result.exit_code == 1

    def test_preset(self, tmp_path, monkeypatch):
        monkeypatch.chdir(PRESETS_DIR.parent)
        source = tmp_path / "talk.wav"
        source.write_bytes(b"RIFF")
        result = runner.invoke(app, ["convert", str(source), "--preset", "podcast", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "wav->mp3" in result.output


class TestGifDryRun:
    def test_plan(self, tmp_path, make_image):
        paths = []
        for i in range(2):
            path = tmp_path / f"frame{i}.png"
            path.write_bytes(make_image())
            paths.append(str(path))
        result = runner.invoke(app, ["gif", *paths, "--fps", "4", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "from 2 images" in result.output
        assert "paletteuse" in result.output


class TestPdfCommands:
    def test_merge(self, tmp_path):
        first = _write_pdf(tmp_path / "a.pdf", 1)
        second = _write_pdf(tmp_path / "b.pdf", 2)
        output = tmp_path / "out.pdf"
        result = runner.invoke(app, ["pdf", "merge", str(first), str(second), "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert len(PdfReader(io.BytesIO(output.read_bytes())).pages) == 3

    def test_merge_single_file(self, tmp_path):
        only = _write_pdf(tmp_path / "a.pdf", 1)
        result = runner.invoke(app, ["pdf", "merge", str(only), "-o", str(tmp_path / "out.pdf")])
        assert result.exit_code == 1

    def test_extract_default_name(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        source = _write_pdf(tmp_path / "doc.pdf", 3)
        result = runner.invoke(app, ["pdf", "extract", str(source), "--page", "3"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "page-3.pdf").exists()

    def test_extract_bad_page(self, tmp_path):
        source = _write_pdf(tmp_path / "doc.pdf", 1)
        result = runner.invoke(
            app, ["pdf", "extract", str(source), "--page", "9", "-o", str(tmp_path / "x.pdf")]
        )
        assert result.exit_code == 1
        assert "Invalid page number" in result.output

    def test_images(self, tmp_path, make_image):
        image = tmp_path / "scan.jpg"
        image.write_bytes(make_image("JPEG"))
        output = tmp_path / "scan.pdf"
        result = runner.invoke(app, ["pdf", "images", str(image), "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert output.read_bytes().startswith(b"%PDF")


class TestEstimate:
    def test_video(self, tmp_path):
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"\0" * (1024 * 1024))
        result = runner.invoke(app, ["estimate", str(source)])
        assert result.exit_code == 0, result.output
        assert "1.0 MB" in result.output
        assert "5s" in result.output

    def test_unknown_format(self, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("hello")
        result = runner.invoke(app, ["estimate", str(source)])
        assert result.exit_code == 1
