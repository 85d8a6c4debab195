"""Pydantic schemas for settings and presets."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from uniconv.core.options import ConversionOptions

MiB = 1024 * 1024


class ConverterSettings(BaseModel):
    """Engine selection and resource limits."""

    backend: Literal["process", "wasm"] = "process"
    ffmpeg_path: str | None = None  # None = search PATH
    wasm_module: str | None = None  # WASI build of ffmpeg, required for backend=wasm
    gifsicle_path: str | None = None
    gif_optimize: bool = False
    gif_fps: int = Field(default=10, ge=1, le=60)

    timeout_seconds: float = Field(default=300.0, gt=0)
    max_input_bytes: int = Field(default=500 * MiB, gt=0)
    max_buffer_bytes: int = Field(default=50 * MiB, gt=0)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def for_profile(cls, name: str, **overrides: Any) -> "ConverterSettings":
        """Build settings from a named deployment profile.

        Args:
            name: 'serverless' or 'self-hosted'
            **overrides: Fields taking precedence over the profile

        Returns:
            ConverterSettings
        """
        if name not in PROFILES:
            available = ", ".join(sorted(PROFILES))
            raise ValueError(f"Unknown profile '{name}'. Available: {available}")
        return cls(**{**PROFILES[name], **overrides})


# Serverless deployments are billed by wall time, so inputs and runtime are
# kept small there.
PROFILES: dict[str, dict[str, Any]] = {
    "serverless": {
        "timeout_seconds": 8.0,
        "max_input_bytes": 4 * MiB,
        "max_buffer_bytes": 10 * MiB,
    },
    "self-hosted": {
        "timeout_seconds": 300.0,
        "max_input_bytes": 500 * MiB,
        "max_buffer_bytes": 50 * MiB,
    },
}


class PresetConfig(BaseModel):
    """A named bundle of conversion options."""

    name: str
    description: str = ""
    output_format: str | None = None
    options: ConversionOptions = Field(default_factory=ConversionOptions)

    model_config = ConfigDict(extra="allow")  # Allow additional fields for extensibility
