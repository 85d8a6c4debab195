"""Engine invocation with timeouts, output checks and cleanup."""

import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping

from uniconv.config.schema import ConverterSettings
from uniconv.core.command import EngineInvocation
from uniconv.core.errors import (
    ConfigurationError,
    EmptyOutput,
    EngineFailure,
    EngineTimeout,
    InputTooLarge,
    classify_engine_failure,
)
from uniconv.engine.base import TranscodeEngine, create_engine

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Converted bytes plus bookkeeping."""

    data: bytes
    size: int
    output_ext: str = ""
    elapsed: float = 0.0


def remove_tree(path: Path) -> None:
    """Remove a working directory, logging instead of raising on failure."""
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning("Failed to clean up %s: %s", path, e)


class InvocationSession:
    """A temporary working directory plus a deadline shared by its runs."""

    def __init__(self, invoker: "EngineInvoker", workdir: Path, deadline: float):
        self.invoker = invoker
        self.workdir = workdir
        self.deadline = deadline
        self.started = time.monotonic()

    @property
    def remaining(self) -> float:
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def write(self, name: str, data: bytes) -> Path:
        """Place an input file in the working directory.

        Raises:
            InputTooLarge: Input exceeds max_input_bytes
        """
        limit = self.invoker.settings.max_input_bytes
        if len(data) > limit:
            raise InputTooLarge(len(data), limit)
        path = self.workdir / name
        path.write_bytes(data)
        return path

    def run(self, invocation: EngineInvocation) -> Path:
        """Run one invocation and verify its output.

        Returns:
            Path to the produced output file

        Raises:
            EngineTimeout: Deadline or invocation timeout exceeded
            ConversionError: Classified engine failure
            EmptyOutput: Engine succeeded but wrote nothing
        """
        remaining = self.remaining
        if remaining <= 0:
            raise EngineTimeout(f"No time left for stage '{invocation.label}'")
        timeout = min(invocation.timeout, remaining)

        engine = self.invoker.engine_for(invocation)
        logger.debug(
            "Running %s: %s", invocation.label, invocation.command_line(engine.program_name)
        )

        try:
            run = engine.run(invocation.args, self.workdir, timeout, invocation.max_buffer)
        except EngineTimeout:
            logger.warning("Stage '%s' timed out after %.1fs", invocation.label, timeout)
            raise

        if run.returncode != 0:
            error = classify_engine_failure(run.stderr, run.returncode)
            logger.warning(
                "Stage '%s' failed (%s, exit %d): %s",
                invocation.label,
                error.kind.value,
                run.returncode,
                run.stderr.strip()[-2000:],
            )
            raise error

        output = self.workdir / invocation.output
        if not output.is_file() or output.stat().st_size == 0:
            raise EmptyOutput(
                f"Stage '{invocation.label}' produced empty output", detail=run.stderr
            )

        size = output.stat().st_size
        if size > invocation.max_buffer:
            raise EngineFailure(
                f"Output of '{invocation.label}' is {size} bytes, "
                f"over the {invocation.max_buffer} byte limit"
            )

        logger.info("Stage '%s' done in %.2fs (%d bytes)", invocation.label, run.elapsed, size)
        return output

    def read(self, name: str) -> bytes:
        return (self.workdir / name).read_bytes()


class EngineInvoker:
    """Executes engine invocations against a configured backend.

    Args:
        engine: Transcoding engine backend
        settings: Limits (timeout, input size, buffer size)
        tools: Extra engines keyed by program name (e.g. 'gifsicle')
    """

    def __init__(
        self,
        engine: TranscodeEngine,
        settings: ConverterSettings | None = None,
        tools: Mapping[str, TranscodeEngine] | None = None,
    ):
        self.engine = engine
        self.settings = settings or ConverterSettings()
        self.tools = dict(tools or {})

    @classmethod
    def from_settings(cls, settings: ConverterSettings) -> "EngineInvoker":
        tools = {}
        if settings.gif_optimize:
            from uniconv.engine.process import create_gifsicle

            tools["gifsicle"] = create_gifsicle(settings)
        return cls(create_engine(settings), settings, tools)

    def engine_for(self, invocation: EngineInvocation) -> TranscodeEngine:
        if invocation.program is None:
            return self.engine
        if invocation.program not in self.tools:
            raise ConfigurationError(f"No engine configured for '{invocation.program}'")
        return self.tools[invocation.program]

    def has_tool(self, program: str) -> bool:
        return program in self.tools

    def close(self) -> None:
        """Close the engine and every tool engine."""
        for engine in (self.engine, *self.tools.values()):
            engine.close()

    def __enter__(self) -> "EngineInvoker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def session(self, timeout: float | None = None) -> Iterator[InvocationSession]:
        """Open a working directory that is removed on every exit path.

        Args:
            timeout: Total wall-clock budget for all runs in the session
        """
        budget = timeout if timeout is not None else self.settings.timeout_seconds
        workdir = Path(tempfile.mkdtemp(prefix="uniconv-"))
        session = InvocationSession(self, workdir, time.monotonic() + budget)
        try:
            yield session
        finally:
            remove_tree(workdir)

    def invoke(self, invocation: EngineInvocation, inputs: Mapping[str, bytes]) -> ConversionResult:
        """Run a single-pass invocation end to end.

        Args:
            invocation: What to run
            inputs: File name -> bytes to place in the working directory

        Returns:
            ConversionResult holding the output bytes
        """
        with self.session(invocation.timeout) as session:
            for name, data in inputs.items():
                session.write(name, data)
            session.run(invocation)
            data = session.read(invocation.output)
            elapsed = session.elapsed

        return ConversionResult(
            data=data,
            size=len(data),
            output_ext=Path(invocation.output).suffix.lstrip("."),
            elapsed=elapsed,
        )
