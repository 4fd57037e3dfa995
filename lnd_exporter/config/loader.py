"""Configuration loader with YAML parsing and environment variable substitution."""

import yaml
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..utils.errors import ConfigError
from .models import ExporterSystemConfig


class ConfigLoader:
    """Load and validate exporter configuration."""

    @staticmethod
    def load_from_file(config_path: str) -> ExporterSystemConfig:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            ExporterSystemConfig: Validated configuration object

        Raises:
            ConfigError: Missing or unparsable file, or failed validation
        """
        config_file = Path(config_path).expanduser()
        if not config_file.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                raw_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot parse configuration file {config_path}: {e}") from e

        return ConfigLoader.from_mapping(raw_config)

    @staticmethod
    def from_mapping(raw_config: Optional[Dict[str, Any]]) -> ExporterSystemConfig:
        """
        Validate an already-parsed configuration mapping.

        An empty document yields the defaults.

        Raises:
            ConfigError: If the mapping does not validate
        """
        if raw_config is None:
            raw_config = {}
        if not isinstance(raw_config, dict):
            raise ConfigError("Configuration root must be a mapping")

        # Substitute environment variables
        raw_config = ConfigLoader._substitute_env_vars(raw_config)

        try:
            return ExporterSystemConfig(**raw_config)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            pattern = r'\$\{(\w+)\}'
            return re.sub(pattern, lambda m: os.getenv(m.group(1), ''), obj)

        elif isinstance(obj, dict):
            return {k: ConfigLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [ConfigLoader._substitute_env_vars(item) for item in obj]

        return obj
