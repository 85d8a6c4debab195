"""Native executable backend (ffmpeg, gifsicle) run as a subprocess."""

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import Sequence

from uniconv.config.schema import ConverterSettings
from uniconv.core.errors import ConfigurationError, EngineTimeout
from uniconv.engine.base import STDERR_NAME, EngineRun, TranscodeEngine, read_tail, register_backend

logger = logging.getLogger(__name__)

FFMPEG_FALLBACK_PATHS = (
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
)


def discover_executable(name: str, configured: str | None = None, fallbacks: Sequence[str] = ()) -> str:
    """Locate an executable.

    Args:
        name: Program name to search on PATH
        configured: Explicit path from settings, checked first
        fallbacks: Well-known locations tried after PATH

    Returns:
        Path to the executable

    Raises:
        ConfigurationError: Not found anywhere
    """
    if configured:
        if Path(configured).is_file() or shutil.which(configured):
            return configured
        raise ConfigurationError(f"Configured {name} not found: {configured}")

    found = shutil.which(name)
    if found:
        return found

    for candidate in fallbacks:
        if Path(candidate).is_file():
            logger.info("Found %s at %s", name, candidate)
            return candidate

    raise ConfigurationError(f"{name} is not installed or not on PATH")


def discover_ffmpeg(configured: str | None = None) -> str:
    return discover_executable("ffmpeg", configured, FFMPEG_FALLBACK_PATHS)


class ProcessEngine(TranscodeEngine):
    """Runs a native executable with the working directory as cwd."""

    name = "process"

    def __init__(self, executable: str | Path, program_name: str | None = None):
        self.executable = str(executable)
        self.program_name = program_name or Path(self.executable).name

    def run(
        self,
        args: Sequence[str],
        workdir: Path,
        timeout: float,
        max_buffer: int,
    ) -> EngineRun:
        cmd = [self.executable, *args]
        stderr_path = Path(workdir) / STDERR_NAME
        start = time.monotonic()

        # stderr goes to disk so a chatty engine can't grow our memory
        with open(stderr_path, "wb") as err:
            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=workdir,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=err,
                )
            except FileNotFoundError as e:
                raise ConfigurationError(f"Executable not found: {self.executable}") from e

            try:
                returncode = proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
                elapsed = time.monotonic() - start
                raise EngineTimeout(
                    f"{self.program_name} timed out after {elapsed:.1f}s (limit {timeout:.1f}s)",
                    detail=read_tail(stderr_path, max_buffer),
                )

        stderr = read_tail(stderr_path, max_buffer)
        stderr_path.unlink(missing_ok=True)
        return EngineRun(returncode=returncode, stderr=stderr, elapsed=time.monotonic() - start)


@register_backend("process", "Native ffmpeg executable")
def _create_process_engine(settings: ConverterSettings) -> ProcessEngine:
    return ProcessEngine(discover_ffmpeg(settings.ffmpeg_path), program_name="ffmpeg")


def create_gifsicle(settings: ConverterSettings) -> ProcessEngine:
    """Engine for the optional GIF optimization pass."""
    return ProcessEngine(
        discover_executable("gifsicle", settings.gifsicle_path), program_name="gifsicle"
    )
