"""Handles loading configuration from YAML files."""

import copy
import yaml
import os
import logging
from typing import Optional
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    # Recognizer
    "whisper_model": "tiny.en",
    "device": "cuda",
    "whisper_fp16": True,
    "language": "en",
    "fallback_duration_seconds": 120.0,
    # Deadlines for the long-running stages
    "load_timeout_seconds": 60.0,
    "transcribe_timeout_seconds": 600.0,
    "encode_timeout_seconds": 900.0,
    # Encoder
    "ffmpeg_path": None,
    "ffprobe_path": None,
    "video_codec": "libx264",
    "audio_codec": "aac",
    "pixel_format": "yuv420p",
    "font_files": {
        "Arial": "/usr/share/fonts/truetype/msttcorefonts/Arial.ttf",
        "Times": "/usr/share/fonts/truetype/msttcorefonts/Times_New_Roman.ttf",
        "Helvetica": "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "Georgia": "/usr/share/fonts/truetype/msttcorefonts/Georgia.ttf",
    },
    # Paths
    "temp_dir": "tmp",
    "log_dir": "logs",
    "log_file": "lyricsync.log",
    # Interchange header defaults
    "metadata": {
        "title": "Unknown Title",
        "artist": "Unknown Artist",
        "album": "Unknown Album",
        "generator": "LyricSync",
    },
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(config_path: str) -> dict:
    """Reads a YAML mapping; an empty file counts as an empty mapping."""
    if not os.path.exists(config_path):
        logger.error(f"Configuration file not found at path: {config_path}")
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    if not os.path.isfile(config_path):
        raise ConfigurationError(f"Configuration path is not a file: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Could not parse {config_path}: {e}", exc_info=True)
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        logger.error(f"Could not read {config_path}: {e}", exc_info=True)
        raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Top level of {config_path} must be a mapping, got {type(loaded).__name__}.")
    return loaded


class ConfigLoader:
    """Loads LyricSync settings: DEFAULT_CONFIG overlaid with an optional YAML file."""

    def load_config(self, config_path: Optional[str] = None) -> dict:
        """
        Returns the effective configuration.

        Nested mappings (metadata, font_files) are merged key by key, so a
        file only needs the settings it changes.

        Raises:
            FileNotFoundError: If config_path is given but does not exist.
            ConfigurationError: If the file is not a YAML mapping or a value is invalid.
        """
        if config_path is None:
            logger.info("No configuration file given, using built-in defaults.")
            return copy.deepcopy(DEFAULT_CONFIG)

        logger.info(f"Loading configuration overrides from: {config_path}")
        config = _merge(DEFAULT_CONFIG, _read_yaml(config_path))
        self._validate(config, config_path)
        logger.info(f"Configuration loaded from {config_path} (device: {config['device']}, model: {config['whisper_model']})")
        return config

    def _validate(self, config: dict, config_path: str) -> None:
        for key in ("load_timeout_seconds", "transcribe_timeout_seconds",
                    "encode_timeout_seconds", "fallback_duration_seconds"):
            value = config.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(f"'{key}' in {config_path} must be a positive number, got {value!r}")
        if config.get("device") not in ("cuda", "cpu"):
            raise ConfigurationError(f"'device' in {config_path} must be 'cuda' or 'cpu', got {config.get('device')!r}")
        if not isinstance(config.get("font_files"), dict):
            raise ConfigurationError(f"'font_files' in {config_path} must be a mapping of font family to file path")
