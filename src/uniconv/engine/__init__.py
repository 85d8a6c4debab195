"""Engine backends and invocation."""

from uniconv.engine import process, wasm  # noqa: F401  (register backends)
from uniconv.engine.base import EngineRun, TranscodeEngine, create_engine, list_backends
from uniconv.engine.invoker import ConversionResult, EngineInvoker, InvocationSession
from uniconv.engine.process import ProcessEngine, discover_ffmpeg
from uniconv.engine.wasm import WasmEngine

__all__ = [
    "EngineRun",
    "TranscodeEngine",
    "create_engine",
    "list_backends",
    "ConversionResult",
    "EngineInvoker",
    "InvocationSession",
    "ProcessEngine",
    "WasmEngine",
    "discover_ffmpeg",
]
