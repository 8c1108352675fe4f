"""
Configuration loading - YAML file discovery and environment overrides.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..utils.constants import (
    ENV_CAMERA_URL,
    ENV_DATA_DIR,
    ENV_DATABASE_URL,
    ENV_FPS,
    ENV_IOU_THRESHOLD,
    ENV_LABELS,
    ENV_MODEL_FILE,
    ENV_RETENTION_DAYS,
    ENV_STALE_TIMEOUT,
    ENV_THRESHOLD,
    ENV_WEBHOOK_URL,
)
from .schemas import Config, validate_config_pydantic

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yaml"

# env var -> (section, key, parser)
_ENV_OVERRIDES = {
    ENV_CAMERA_URL: ("camera", "url", str),
    ENV_MODEL_FILE: ("detection", "model_file", str),
    ENV_THRESHOLD: ("detection", "confidence_threshold", float),
    ENV_FPS: ("detection", "target_fps", float),
    ENV_IOU_THRESHOLD: ("detection", "iou_threshold", float),
    ENV_STALE_TIMEOUT: ("detection", "stale_timeout_seconds", float),
    ENV_LABELS: (
        "detection",
        "enabled_labels",
        lambda v: [label.strip() for label in v.split(",") if label.strip()],
    ),
    ENV_RETENTION_DAYS: ("retention", "days", int),
    ENV_DATA_DIR: ("storage", "data_dir", str),
    ENV_DATABASE_URL: ("storage", "database_url", str),
    ENV_WEBHOOK_URL: ("broadcast", "webhook_url", str),
}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""


def find_config_file(config_path: str | None = None) -> Path | None:
    """
    Find config file in standard locations.

    Search order:
    1. Specified path (if provided)
    2. Current directory (config.yaml)
    3. ~/.config/camera-detection/config.yaml

    Args:
        config_path: User-specified config path

    Returns:
        Path to config file, or None when only defaults apply

    Raises:
        ConfigError: If an explicitly specified file does not exist
    """
    if config_path:
        specified = Path(config_path)
        if not specified.exists():
            raise ConfigError(f"Specified config file not found: {config_path}")
        return specified

    search_paths = [
        Path.cwd() / DEFAULT_CONFIG_NAME,
        Path.home() / ".config" / "camera-detection" / DEFAULT_CONFIG_NAME,
    ]

    for path in search_paths:
        if path.exists():
            logger.info(f"Using config: {path}")
            return path

    logger.info("No config file found, using built-in defaults")
    return None


def load_config_with_env(config: dict, environ=None) -> dict:
    """
    Apply environment variable overrides to config.

    Args:
        config: Base configuration dictionary
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration with environment variables applied

    Raises:
        ConfigError: If an override value cannot be parsed
    """
    environ = os.environ if environ is None else environ

    for env_name, (section, key, parse) in _ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        raw = environ[env_name]
        try:
            value = parse(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {env_name}: {raw!r}") from e

        config.setdefault(section, {})
        config[section][key] = value
        if env_name == ENV_CAMERA_URL:
            logger.info(f"Using camera URL from environment: {ENV_CAMERA_URL}")
        else:
            logger.debug(f"Override {section}.{key} from {env_name}")

    return config


def load_config(config_path: str | None = None, environ=None) -> Config:
    """
    Load, override, and validate configuration.

    Args:
        config_path: Path to config.yaml (searched for when omitted)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Config

    Raises:
        ConfigError: If the file is missing, unparseable, or invalid
    """
    config_file = find_config_file(config_path)

    raw: dict = {}
    if config_file is not None:
        try:
            with open(config_file, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"Config root must be a mapping: {config_file}")
        logger.info(f"Configuration loaded from {config_file}")

    raw = load_config_with_env(raw, environ)

    try:
        return validate_config_pydantic(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e
