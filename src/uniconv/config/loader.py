"""Settings and preset loading."""

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from uniconv.config.schema import ConverterSettings, PresetConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "UNICONV_"

# Environment variable suffix -> settings field
ENV_OVERRIDES = {
    "BACKEND": "backend",
    "FFMPEG_PATH": "ffmpeg_path",
    "WASM_MODULE": "wasm_module",
    "GIFSICLE_PATH": "gifsicle_path",
    "GIF_OPTIMIZE": "gif_optimize",
    "GIF_FPS": "gif_fps",
    "TIMEOUT": "timeout_seconds",
    "MAX_INPUT_BYTES": "max_input_bytes",
    "MAX_BUFFER_BYTES": "max_buffer_bytes",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config format in {path}")
    return data


def env_overrides(env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect settings overrides from UNICONV_* environment variables."""
    env = os.environ if env is None else env
    overrides = {}
    for suffix, field_name in ENV_OVERRIDES.items():
        value = env.get(ENV_PREFIX + suffix)
        if value not in (None, ""):
            overrides[field_name] = value
    return overrides


def load_settings(
    path: Path | str | None = None,
    profile: str | None = None,
    env: Mapping[str, str] | None = None,
) -> ConverterSettings:
    """Load converter settings.

    Precedence, lowest first: profile defaults, YAML file, environment.

    Args:
        path: YAML settings file (defaults to $UNICONV_CONFIG if set)
        profile: Deployment profile (defaults to $UNICONV_PROFILE if set)
        env: Environment mapping, os.environ by default

    Returns:
        Validated ConverterSettings
    """
    env = os.environ if env is None else env
    path = path or env.get(ENV_PREFIX + "CONFIG")
    profile = profile or env.get(ENV_PREFIX + "PROFILE")

    data: dict[str, Any] = {}
    if path:
        data = _read_yaml(Path(path))
        profile = profile or data.pop("profile", None)
        data.pop("profile", None)

    data = merge_configs(data, env_overrides(env))

    if profile:
        settings = ConverterSettings.for_profile(profile, **data)
    else:
        settings = ConverterSettings(**data)
    logger.debug("Loaded settings: %s", settings.model_dump())
    return settings


def load_preset(path: Path | str) -> PresetConfig:
    """Load a conversion preset from a YAML file.

    Args:
        path: Path to YAML preset file

    Returns:
        Validated PresetConfig
    """
    path = Path(path)
    data = _read_yaml(path)
    data.setdefault("name", path.stem)
    return PresetConfig(**data)


def save_preset(preset: PresetConfig, path: Path | str) -> None:
    """Save a preset to a YAML file."""
    path = Path(path)
    data = preset.model_dump(exclude_none=True, mode="json")

    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def load_preset_by_name(name: str, presets_dir: Path | str | None = None) -> PresetConfig:
    """Load a preset by name from the presets directory.

    Args:
        name: Preset name (without .yaml extension)
        presets_dir: Optional custom presets directory

    Returns:
        Validated PresetConfig
    """
    if presets_dir is None:
        presets_dir = Path.cwd() / "presets"

    presets_dir = Path(presets_dir)

    for suffix in (".yaml", ".yml"):
        candidate = presets_dir / f"{name}{suffix}"
        if candidate.exists():
            return load_preset(candidate)

    if Path(name).exists():
        return load_preset(name)

    raise FileNotFoundError(
        f"Preset '{name}' not found in {presets_dir}. "
        f"Available: {list_available_presets(presets_dir)}"
    )


def list_available_presets(presets_dir: Path | str | None = None) -> list[str]:
    """List preset names (without extension) in the presets directory."""
    if presets_dir is None:
        presets_dir = Path.cwd() / "presets"

    presets_dir = Path(presets_dir)
    if not presets_dir.exists():
        return []

    return sorted(p.stem for p in presets_dir.iterdir() if p.suffix in (".yaml", ".yml"))


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result
