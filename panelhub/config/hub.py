"""
Hub Configuration

Environment-based settings for the plugin runtime (data directory,
outbound HTTP timeouts, session refresh buffer).
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class HubSettings:
    """Plugin runtime configuration loaded from environment variables."""

    # Directory holding plugins.json
    data_dir: str = "./data"
    plugins_file: str = "plugins.json"

    # Bound on every outbound backend request (seconds)
    http_timeout: float = 10.0

    # Cached session tokens are refreshed this many seconds before expiry
    token_refresh_buffer: float = 300.0

    @property
    def plugins_path(self) -> Path:
        return Path(self.data_dir) / self.plugins_file

    def validate(self) -> None:
        """Validate configuration values."""
        if not 0.5 <= self.http_timeout <= 120:
            raise ValueError("http_timeout must be between 0.5 and 120 seconds")
        if self.token_refresh_buffer < 0:
            raise ValueError("token_refresh_buffer must not be negative")
        if not self.plugins_file:
            raise ValueError("plugins_file must not be empty")

    @classmethod
    def from_env(cls) -> "HubSettings":
        """
        Load settings from environment variables.

        Environment Variables:
            PANELHUB_DATA_DIR: Directory for plugins.json (default: ./data)
            PANELHUB_PLUGINS_FILE: Config file name (default: plugins.json)
            PANELHUB_HTTP_TIMEOUT: Outbound request timeout in seconds (default: 10)
            PANELHUB_TOKEN_REFRESH_BUFFER: Token refresh margin in seconds (default: 300)
        """
        settings = cls(
            data_dir=os.getenv("PANELHUB_DATA_DIR", "./data"),
            plugins_file=os.getenv("PANELHUB_PLUGINS_FILE", "plugins.json"),
            http_timeout=float(os.getenv("PANELHUB_HTTP_TIMEOUT", "10.0")),
            token_refresh_buffer=float(os.getenv("PANELHUB_TOKEN_REFRESH_BUFFER", "300")),
        )
        settings.validate()
        return settings


# Global settings instance (lazy-loaded)
_settings: HubSettings | None = None


def get_hub_settings() -> HubSettings:
    """Get or create the process-wide hub settings."""
    global _settings
    if _settings is None:
        _settings = HubSettings.from_env()
    return _settings


def reset_hub_settings() -> None:
    """Drop cached settings so the next call re-reads the environment (tests)."""
    global _settings
    _settings = None
