"""WebAssembly backend: a WASI build of ffmpeg run inside wasmtime.

The working directory is preopened as the guest root, so the relative file
names produced by the command builder resolve identically to the native
backend. Deadlines use wasmtime epoch interruption: one shared ticker thread
advances the epoch, and each run's store gets a deadline in ticks.
"""

import logging
import math
import threading
import time
from pathlib import Path
from typing import Sequence

import wasmtime

from uniconv.config.schema import ConverterSettings
from uniconv.core.errors import ConfigurationError, EngineTimeout
from uniconv.engine.base import STDERR_NAME, EngineRun, TranscodeEngine, read_tail, register_backend

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.05


class _EpochTicker:
    """Advances an engine's epoch at a fixed interval on a daemon thread."""

    def __init__(self, engine: wasmtime.Engine, interval: float = TICK_SECONDS):
        self._engine = engine
        self._interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name="wasm-epoch", daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self._engine.increment_epoch()

    def stop(self) -> None:
        self._stop.set()
        self._thread.join()


class WasmEngine(TranscodeEngine):
    """Runs a WASI command module (e.g. ffmpeg compiled to wasm32-wasi)."""

    name = "wasm"

    def __init__(self, module_path: str | Path, program_name: str = "ffmpeg"):
        module_path = Path(module_path)
        if not module_path.is_file():
            raise ConfigurationError(f"WASM module not found: {module_path}")

        self.program_name = program_name
        config = wasmtime.Config()
        config.epoch_interruption = True
        self._engine = wasmtime.Engine(config)

        logger.info("Compiling WASM module %s", module_path)
        self._module = wasmtime.Module.from_file(self._engine, str(module_path))
        self._linker = wasmtime.Linker(self._engine)
        self._linker.define_wasi()
        self._ticker = _EpochTicker(self._engine)

    def run(
        self,
        args: Sequence[str],
        workdir: Path,
        timeout: float,
        max_buffer: int,
    ) -> EngineRun:
        workdir = Path(workdir)
        stderr_path = workdir / STDERR_NAME

        wasi = wasmtime.WasiConfig()
        wasi.argv = [self.program_name, *args]
        wasi.preopen_dir(str(workdir), "/")
        wasi.stderr_file = str(stderr_path)

        store = wasmtime.Store(self._engine)
        store.set_wasi(wasi)
        store.set_epoch_deadline(max(1, math.ceil(timeout / TICK_SECONDS)))

        start = time.monotonic()
        returncode = 0
        trap_message = ""
        try:
            instance = self._linker.instantiate(store, self._module)
            entry = instance.exports(store)["_start"]
            entry(store)
        except wasmtime.ExitTrap as e:
            returncode = e.code
        except wasmtime.Trap as e:
            elapsed = time.monotonic() - start
            if e.trap_code == wasmtime.TrapCode.INTERRUPT or elapsed >= timeout:
                raise EngineTimeout(
                    f"{self.program_name} (wasm) timed out after {elapsed:.1f}s "
                    f"(limit {timeout:.1f}s)",
                    detail=read_tail(stderr_path, max_buffer),
                ) from e
            returncode = 1
            trap_message = f"\nwasm trap: {e.message}"
        except wasmtime.WasmtimeError as e:
            returncode = 1
            trap_message = f"\nwasm error: {e}"

        stderr = read_tail(stderr_path, max_buffer) + trap_message
        stderr_path.unlink(missing_ok=True)
        return EngineRun(returncode=returncode, stderr=stderr, elapsed=time.monotonic() - start)

    def close(self) -> None:
        self._ticker.stop()


@register_backend("wasm", "ffmpeg compiled to WebAssembly (WASI), run in wasmtime")
def _create_wasm_engine(settings: ConverterSettings) -> WasmEngine:
    if not settings.wasm_module:
        raise ConfigurationError("backend 'wasm' requires 'wasm_module' to be set")
    return WasmEngine(settings.wasm_module)
