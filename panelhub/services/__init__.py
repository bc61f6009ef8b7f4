"""
PanelHub Services Package

- config_store: JSON persistence of plugin configurations
- plugin_manager: Plugin lifecycle, action routing and configuration
- factory: HubContext construction (replaces global singletons)
"""

from .config_store import PluginConfigStore
from .plugin_manager import PluginManager
from .factory import HubContext, create_hub_context, close_hub_context

__all__ = [
    "PluginConfigStore",
    "PluginManager",
    "HubContext",
    "create_hub_context",
    "close_hub_context",
]
