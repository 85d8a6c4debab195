"""Configuration loading and validation."""

from uniconv.config.loader import load_preset, load_settings, save_preset
from uniconv.config.schema import ConverterSettings, PresetConfig

__all__ = ["ConverterSettings", "PresetConfig", "load_settings", "load_preset", "save_preset"]
