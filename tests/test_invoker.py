"""Tests for the engine invoker and the subprocess engine."""

import logging
import sys
import time

import pytest

from uniconv.config.schema import ConverterSettings
from uniconv.core.command import EngineInvocation
from uniconv.core.errors import (
    ConfigurationError,
    CorruptInput,
    EmptyOutput,
    EngineFailure,
    EngineTimeout,
    ErrorKind,
    InputTooLarge,
    UnsupportedCodecCombination,
    classify_engine_failure,
)
from uniconv.engine import invoker as invoker_module
from uniconv.engine.invoker import EngineInvoker
from uniconv.engine.process import ProcessEngine


def _invocation(output="output.mp4", timeout=30.0, max_buffer=1024 * 1024, program=None):
    return EngineInvocation(
        args=("-i", "input.mov", output),
        output=output,
        timeout=timeout,
        max_buffer=max_buffer,
        program=program,
    )


class TestClassification:
    @pytest.mark.parametrize(
        "stderr,error_cls",
        [
            ("[mp4 @ 0x1] Could not find tag for codec pcm_s16le in stream #1", UnsupportedCodecCombination),
            ("codec not currently supported in container", UnsupportedCodecCombination),
            ("input.mov: Invalid data found when processing input", CorruptInput),
            ("[mov,mp4] moov atom not found", CorruptInput),
            ("something else entirely", EngineFailure),
        ],
    )
    def test_patterns(self, stderr, error_cls):
        error = classify_engine_failure(stderr, 1)
        assert type(error) is error_cls
        assert error.detail == stderr

    def test_specific_user_message(self):
        error = classify_engine_failure("input.mov: No such file or directory")
        assert error.kind == ErrorKind.ENGINE_FAILURE
        assert error.user_message == "The input file could not be found."

    def test_to_dict(self):
        data = classify_engine_failure("moov atom not found", 1).to_dict()
        assert data["kind"] == "corrupt_input"
        assert "exit status 1" in data["message"]


class TestInvoke:
    def test_success(self, invoker, fake_engine):
        result = invoker.invoke(_invocation(), {"input.mov": b"data"})
        assert result.data == b"fake-output"
        assert result.size == len(b"fake-output")
        assert result.output_ext == "mp4"
        assert fake_engine.calls[0]["files"] == ["input.mov"]

    def test_workdir_removed_on_success(self, invoker, fake_engine):
        invoker.invoke(_invocation(), {"input.mov": b"data"})
        assert not fake_engine.calls[0]["workdir"].exists()

    def test_workdir_removed_on_failure(self, settings, make_engine):
        engine = make_engine(returncode=1, stderr="boom")
        with pytest.raises(EngineFailure):
            EngineInvoker(engine, settings).invoke(_invocation(), {"input.mov": b"data"})
        assert not engine.calls[0]["workdir"].exists()

    def test_classified_failure(self, settings, make_engine):
        engine = make_engine(returncode=1, stderr="Could not find tag for codec h264")
        with pytest.raises(UnsupportedCodecCombination) as exc:
            EngineInvoker(engine, settings).invoke(_invocation(), {"input.mov": b"data"})
        assert "Could not find tag" in exc.value.detail

    def test_failure_logged(self, settings, make_engine, caplog):
        engine = make_engine(returncode=1, stderr="Invalid data found when processing input")
        with caplog.at_level(logging.WARNING, logger="uniconv.engine.invoker"):
            with pytest.raises(CorruptInput):
                EngineInvoker(engine, settings).invoke(_invocation(), {"input.mov": b"data"})
        assert "corrupt_input" in caplog.text

    def test_missing_output(self, settings, make_engine):
        engine = make_engine(write_output=False)
        with pytest.raises(EmptyOutput):
            EngineInvoker(engine, settings).invoke(_invocation(), {"input.mov": b"data"})

    def test_zero_length_output(self, settings, make_engine):
        engine = make_engine(output=b"")
        with pytest.raises(EmptyOutput):
            EngineInvoker(engine, settings).invoke(_invocation(), {"input.mov": b"data"})

    def test_output_over_buffer(self, settings, make_engine):
        engine = make_engine(output=b"x" * 100)
        with pytest.raises(EngineFailure, match="byte limit"):
            EngineInvoker(engine, settings).invoke(
                _invocation(max_buffer=10), {"input.mov": b"data"}
            )

    def test_input_too_large(self, fake_engine):
        settings = ConverterSettings(max_input_bytes=4)
        with pytest.raises(InputTooLarge) as exc:
            EngineInvoker(fake_engine, settings).invoke(_invocation(), {"input.mov": b"12345"})
        assert exc.value.kind == ErrorKind.INVALID_OPTION
        assert fake_engine.calls == []

    def test_cleanup_failure_only_logged(self, invoker, monkeypatch, caplog):
        def broken_rmtree(path):
            raise OSError("device busy")

        monkeypatch.setattr(invoker_module.shutil, "rmtree", broken_rmtree)
        with caplog.at_level(logging.WARNING, logger="uniconv.engine.invoker"):
            result = invoker.invoke(_invocation(), {"input.mov": b"data"})
        assert result.data == b"fake-output"
        assert "device busy" in caplog.text


class TestSession:
    def test_timeout_is_min_of_stage_and_remaining(self, invoker, fake_engine):
        with invoker.session(timeout=5.0) as session:
            session.write("input.mov", b"data")
            session.run(_invocation(timeout=300.0))
            session.run(_invocation(output="second.mp4", timeout=1.0))
        assert fake_engine.calls[0]["timeout"] <= 5.0
        assert fake_engine.calls[1]["timeout"] == 1.0

    def test_exhausted_deadline(self, invoker, fake_engine):
        with pytest.raises(EngineTimeout):
            with invoker.session(timeout=0.0) as session:
                session.run(_invocation())
        assert fake_engine.calls == []

    def test_tool_routing(self, settings, fake_engine, make_engine):
        tool = make_engine(program_name="gifsicle")
        invoker = EngineInvoker(fake_engine, settings, tools={"gifsicle": tool})
        with invoker.session() as session:
            session.run(_invocation(output="optimized.gif", program="gifsicle"))
        assert len(tool.calls) == 1
        assert fake_engine.calls == []

    def test_missing_tool(self, invoker):
        with pytest.raises(ConfigurationError):
            with invoker.session() as session:
                session.run(_invocation(program="gifsicle"))


class TestProcessEngine:
    """Runs the Python interpreter as a stand-in engine executable."""

    @pytest.fixture
    def python_invoker(self):
        return EngineInvoker(ProcessEngine(sys.executable), ConverterSettings())

    def test_success(self, python_invoker):
        invocation = EngineInvocation(
            args=("-c", "open('out.bin', 'wb').write(open('in.bin', 'rb').read()[::-1])"),
            output="out.bin",
        )
        result = python_invoker.invoke(invocation, {"in.bin": b"abc"})
        assert result.data == b"cba"

    def test_stderr_classified(self, python_invoker):
        script = (
            "import sys; sys.stderr.write('in.bin: Invalid data found when processing input'); "
            "sys.exit(1)"
        )
        invocation = EngineInvocation(args=("-c", script), output="out.bin")
        with pytest.raises(CorruptInput) as exc:
            python_invoker.invoke(invocation, {"in.bin": b"abc"})
        assert "Invalid data found" in exc.value.detail

    def test_timeout_kills_process(self, python_invoker):
        script = "import time; open('out.bin', 'wb').write(b'partial'); time.sleep(30)"
        invocation = EngineInvocation(args=("-c", script), output="out.bin", timeout=0.5)
        start = time.monotonic()
        with pytest.raises(EngineTimeout):
            python_invoker.invoke(invocation, {})
        assert time.monotonic() - start < 10.0

    def test_missing_executable(self):
        invoker = EngineInvoker(ProcessEngine("/nonexistent/ffmpeg"), ConverterSettings())
        with pytest.raises(ConfigurationError):
            invoker.invoke(EngineInvocation(args=("-version",), output="x"), {})
