"""Engine interface and backend registry."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from uniconv.config.schema import ConverterSettings
from uniconv.core.errors import ConfigurationError

# File the engines stream diagnostics into, inside the working directory
STDERR_NAME = ".engine-stderr.log"


@dataclass
class EngineRun:
    """Outcome of one engine execution."""

    returncode: int
    stderr: str
    elapsed: float


class TranscodeEngine(ABC):
    """Something that can execute an argument list in a working directory.

    Implementations must kill the run and raise ``EngineTimeout`` when
    ``timeout`` elapses.
    """

    name: str = "engine"
    program_name: str = "ffmpeg"

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        workdir: Path,
        timeout: float,
        max_buffer: int,
    ) -> EngineRun:
        """Run the engine once.

        Args:
            args: Arguments, without the program name
            workdir: Directory holding inputs; outputs are written here
            timeout: Wall-clock budget in seconds
            max_buffer: Maximum bytes of diagnostic text to keep

        Returns:
            EngineRun with exit status and captured stderr
        """

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""


def read_tail(path: Path, max_bytes: int) -> str:
    """Read at most the last ``max_bytes`` of a diagnostics file."""
    if not path.exists():
        return ""
    size = path.stat().st_size
    with open(path, "rb") as f:
        if size > max_bytes:
            f.seek(size - max_bytes)
        data = f.read()
    return data.decode("utf-8", errors="replace")


# Type alias for backend factories
EngineFactory = Callable[[ConverterSettings], TranscodeEngine]


class EngineRegistry:
    """Registry of engine backends selectable from configuration."""

    def __init__(self):
        self._factories: dict[str, EngineFactory] = {}
        self._descriptions: dict[str, str] = {}

    def register(self, name: str, factory: EngineFactory, description: str = "") -> None:
        self._factories[name] = factory
        self._descriptions[name] = description

    def create(self, settings: ConverterSettings) -> TranscodeEngine:
        """Instantiate the backend named by ``settings.backend``.

        Raises:
            ConfigurationError: Unknown backend
        """
        if settings.backend not in self._factories:
            available = ", ".join(sorted(self._factories))
            raise ConfigurationError(
                f"Unknown engine backend '{settings.backend}'. Available: {available}"
            )
        return self._factories[settings.backend](settings)

    def list(self) -> list[tuple[str, str]]:
        return [(name, self._descriptions.get(name, "")) for name in sorted(self._factories)]

    def __contains__(self, name: str) -> bool:
        return name in self._factories


# Global registry instance
_registry = EngineRegistry()


def register_backend(
    name: str,
    description: str = "",
) -> Callable[[EngineFactory], EngineFactory]:
    """Decorator to register an engine backend factory."""

    def decorator(factory: EngineFactory) -> EngineFactory:
        _registry.register(name, factory, description)
        return factory

    return decorator


def create_engine(settings: ConverterSettings) -> TranscodeEngine:
    return _registry.create(settings)


def list_backends() -> list[tuple[str, str]]:
    return _registry.list()
