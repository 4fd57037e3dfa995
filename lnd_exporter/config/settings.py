"""Environment settings used as CLI defaults."""

import os
from typing import Optional


class Settings:
    """Application settings from environment variables."""

    @staticmethod
    def get(key: str, default: Optional[str] = None) -> str:
        """
        Get environment variable value.

        Args:
            key: Environment variable name
            default: Default value if not set

        Returns:
            str: Environment variable value, empty if unset and no default
        """
        return os.getenv(key, default) or ""

    @staticmethod
    def config_path() -> str:
        return Settings.get("LND_EXPORTER_CONFIG", "config/config.yaml")

    @staticmethod
    def log_level() -> str:
        return Settings.get("LOG_LEVEL", "")
