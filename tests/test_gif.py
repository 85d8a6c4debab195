"""Tests for the GIF pipeline."""

import io
import logging
import shutil

import pytest
from PIL import Image, ImageSequence

from uniconv.config.schema import ConverterSettings
from uniconv.core.errors import EmptyOutput, EngineFailure, InvalidOption, UnsupportedFormat
from uniconv.engine.invoker import EngineInvoker
from uniconv.pipeline.convert import convert_media
from uniconv.pipeline.gif import (
    images_to_gif,
    limit_color_table,
    plan_images_to_gif,
    probe_image,
)

requires_ffmpeg = pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")


class TestProbeImage:
    def test_png(self, make_image):
        assert probe_image(make_image("PNG", (30, 20))) == ("png", (30, 20))

    def test_jpeg(self, make_image):
        assert probe_image(make_image("JPEG"))[0] == "jpg"

    def test_gif_rejected(self, make_image):
        with pytest.raises(UnsupportedFormat):
            probe_image(make_image("GIF"))

    def test_garbage_rejected(self):
        with pytest.raises(UnsupportedFormat):
            probe_image(b"definitely not an image")


class TestImagesToGif:
    def test_stage_order(self, gif_invoker, gif_engine, make_image):
        images = [make_image(), make_image(color=(0, 255, 0)), make_image(color=(0, 0, 255))]
        result = images_to_gif(gif_invoker, images, fps=5, quality="low")

        assert gif_engine.outputs == [
            "frame_00000.png",
            "frame_00001.png",
            "frame_00002.png",
            "palette.png",
            "output.gif",
        ]
        assert result.data.startswith(b"GIF89a")
        assert result.output_ext == "gif"

    def test_inputs_written_before_first_stage(self, gif_invoker, gif_engine, make_image):
        images_to_gif(gif_invoker, [make_image("PNG"), make_image("JPEG")])
        assert gif_engine.calls[0]["files"] == ["input_0.png", "input_1.jpg"]

    def test_canvas_from_first_image(self, settings, make_image):
        images = [make_image(size=(64, 48)), make_image(size=(32, 32))]
        plan, _ = plan_images_to_gif(images, settings)
        for stage in plan.prepare:
            assert "scale=64:48:" in " ".join(stage.args)

    def test_canvas_override(self, settings, make_image):
        plan, _ = plan_images_to_gif([make_image(size=(64, 48))], settings, size="32x-2")
        assert "pad=32:24" in " ".join(plan.prepare[0].args)

    def test_default_fps_from_settings(self, make_image):
        plan, _ = plan_images_to_gif([make_image()], ConverterSettings(gif_fps=15))
        assert "15" in plan.palette.args

    def test_no_images(self, invoker):
        with pytest.raises(InvalidOption):
            images_to_gif(invoker, [])

    @pytest.mark.parametrize("fps", [0, -3])
    def test_bad_fps(self, invoker, make_image, fps):
        with pytest.raises(InvalidOption):
            images_to_gif(invoker, [make_image()], fps=fps)

    def test_empty_intermediate_is_hard_failure(self, settings, make_engine, make_image):
        engine = make_engine(output=b"")
        with pytest.raises(EmptyOutput):
            images_to_gif(EngineInvoker(engine, settings), [make_image()])
        assert len(engine.calls) == 1

    def test_optimize_pass(self, fake_engine, make_engine, make_image):
        gifsicle = make_engine(program_name="gifsicle", output=b"smaller")
        invoker = EngineInvoker(
            fake_engine, ConverterSettings(gif_optimize=True), tools={"gifsicle": gifsicle}
        )
        result = images_to_gif(invoker, [make_image()], quality="high")
        assert result.data == b"smaller"
        assert "--colors=128" in gifsicle.calls[0]["args"]

    def test_optimize_without_tool_skipped(self, gif_engine, make_image, caplog):
        invoker = EngineInvoker(gif_engine, ConverterSettings(gif_optimize=True))
        with caplog.at_level(logging.WARNING, logger="uniconv.pipeline.gif"):
            result = images_to_gif(invoker, [make_image()])
        assert result.data.startswith(b"GIF89a")
        assert "gifsicle" in caplog.text

    def test_unreadable_output_is_engine_failure(self, invoker, make_image):
        with pytest.raises(EngineFailure, match="unreadable GIF"):
            images_to_gif(invoker, [make_image()])


class TestLimitColorTable:
    def test_table_shrunk_to_palette_size(self, make_gif):
        data = make_gif(frames=3)
        assert _table_entries(data) == 256
        assert _table_entries(limit_color_table(data, 32)) <= 32

    def test_pixels_unchanged(self, make_gif):
        data = make_gif(frames=3)
        before = [frame.getpixel((0, 0)) for frame in _gif_frames(data)]
        after = [frame.getpixel((0, 0)) for frame in _gif_frames(limit_color_table(data, 32))]
        assert after == before

    def test_timing_kept(self, make_gif):
        data = limit_color_table(make_gif(frames=2, duration=250), 64)
        with Image.open(io.BytesIO(data)) as img:
            assert img.n_frames == 2
            assert img.info["loop"] == 0
            assert img.info["duration"] == 250

    @pytest.mark.parametrize("kind", ["png", "garbage"])
    def test_not_a_gif(self, make_image, kind):
        data = make_image("PNG") if kind == "png" else b"not a gif"
        with pytest.raises(EngineFailure):
            limit_color_table(data, 32)


class TestVideoToGif:
    def test_stages(self, gif_invoker, gif_engine):
        result = convert_media(gif_invoker, b"video", "clip.mp4", "gif", {"playbackSpeed": 2})
        assert gif_engine.outputs == ["frame_%05d.png", "palette.png", "output.gif"]
        assert "setpts=0.5*PTS" in " ".join(gif_engine.calls[0]["args"])
        assert gif_engine.calls[0]["files"] == ["input.mp4"]
        assert result.output_ext == "gif"

    def test_fps_option(self, gif_invoker, gif_engine):
        convert_media(gif_invoker, b"video", "mov", "gif", {"fps": 20})
        assert "fps=20" in " ".join(gif_engine.calls[0]["args"])


def _gif_frames(data: bytes) -> list[Image.Image]:
    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "GIF"
        return [frame.convert("RGB") for frame in ImageSequence.Iterator(img)]


def _table_entries(data: bytes) -> int:
    packed = data[10]
    assert packed & 0x80, "no global color table"
    return 2 ** ((packed & 0x07) + 1)


def _colorful(size=(64, 64), shift=0) -> bytes:
    width, height = size
    img = Image.new("RGB", size)
    img.putdata(
        [
            ((x * 4 + shift) % 256, (y * 4) % 256, ((x + y) * 2 + shift) % 256)
            for y in range(height)
            for x in range(width)
        ]
    )
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


@pytest.mark.ffmpeg
@requires_ffmpeg
class TestRealFfmpeg:
    @pytest.fixture
    def real_invoker(self):
        settings = ConverterSettings(timeout_seconds=120)
        with EngineInvoker.from_settings(settings) as invoker:
            yield invoker

    @pytest.mark.parametrize("count", [1, 3])
    def test_frame_count_matches_images(self, real_invoker, count):
        images = [_colorful(shift=i * 40) for i in range(count)]
        result = images_to_gif(real_invoker, images, fps=5)
        assert len(_gif_frames(result.data)) == count

    @pytest.mark.parametrize("quality,limit", [("low", 32), ("medium", 64), ("high", 128)])
    def test_palette_bounded_by_quality(self, real_invoker, quality, limit):
        images = [_colorful(shift=0), _colorful(shift=100)]
        result = images_to_gif(real_invoker, images, fps=5, quality=quality)
        assert _table_entries(result.data) <= limit

    def test_video_palette_bounded(self, real_invoker):
        source = _animated_gif((40, 30), frames=3)
        result = convert_media(real_invoker, source, "gif", "gif", {"quality": "low"})
        assert _table_entries(result.data) <= 32

    def test_mixed_sizes_share_canvas(self, real_invoker, make_image):
        images = [make_image(size=(80, 60)), make_image(size=(30, 50), color=(0, 0, 255))]
        result = images_to_gif(real_invoker, images, fps=2)
        frames = _gif_frames(result.data)
        assert len(frames) == 2
        assert all(frame.size == (80, 60) for frame in frames)


def _animated_gif(size, frames: int = 4) -> bytes:
    images = [Image.open(io.BytesIO(_colorful(size, shift=i * 30))) for i in range(frames)]
    buf = io.BytesIO()
    images[0].save(buf, "GIF", save_all=True, append_images=images[1:], duration=100, loop=0)
    return buf.getvalue()


@pytest.mark.ffmpeg
@requires_ffmpeg
class TestRealOddDimensions:
    @pytest.fixture
    def real_invoker(self):
        with EngineInvoker.from_settings(ConverterSettings(timeout_seconds=120)) as invoker:
            yield invoker

    @pytest.mark.parametrize("target", ["mp4", "mov", "mkv"])
    def test_odd_gif_to_x264(self, real_invoker, target):
        result = convert_media(real_invoker, _animated_gif((101, 75)), "gif", target)
        assert result.size > 0

    def test_keep_aspect_resolution(self, real_invoker):
        clip = convert_media(real_invoker, _animated_gif((101, 75)), "gif", "mp4").data
        result = convert_media(real_invoker, clip, "mp4", "mp4", {"resolution": "-1:51"})
        assert result.data[4:8] == b"ftyp"
