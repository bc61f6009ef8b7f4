"""Configuration modules for PanelHub."""

from .hub import (
    HubSettings,
    get_hub_settings,
    reset_hub_settings,
)
from .logging_config import (
    configure_logging,
    get_logger,
)

__all__ = [
    'HubSettings',
    'get_hub_settings',
    'reset_hub_settings',
    'configure_logging',
    'get_logger',
]
