"""Environment settings."""

import os
from typing import Optional


class Settings:
    """Application settings from environment variables."""

    DEFAULT_CONFIG_PATH = "config/config.yaml"

    @staticmethod
    def config_path() -> str:
        """Config file location, overridable with HAPROXY_EXPORTER_CONFIG."""
        return os.getenv("HAPROXY_EXPORTER_CONFIG") or Settings.DEFAULT_CONFIG_PATH

    @staticmethod
    def log_level() -> Optional[str]:
        """LOG_LEVEL from the environment, or None when unset."""
        return os.getenv("LOG_LEVEL") or None
