"""
Configuration loading, validation, and runtime settings.

- load_config: YAML discovery + environment overrides + validation
- load_config_with_env: Apply environment variable overrides
- DetectionSettings: Runtime-mutable settings read by the pipeline

Pydantic schemas available for type-safe validation:
- Config: Complete configuration schema
- validate_config_pydantic: Validate and parse config to Pydantic model
"""

from .loader import ConfigError, find_config_file, load_config, load_config_with_env
from .schemas import (
    BroadcastConfig,
    CameraConfig,
    Config,
    DetectionConfig,
    RetentionConfig,
    StorageConfig,
    validate_config_pydantic,
)
from .settings import DetectionSettings

__all__ = [
    "BroadcastConfig",
    "CameraConfig",
    # Pydantic validation
    "Config",
    # Exception
    "ConfigError",
    "DetectionConfig",
    # Runtime
    "DetectionSettings",
    "RetentionConfig",
    "StorageConfig",
    # Config loading
    "find_config_file",
    "load_config",
    "load_config_with_env",
    "validate_config_pydantic",
]
