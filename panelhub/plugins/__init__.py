"""
PanelHub Plugin System

Capability-based plugin architecture bridging the wall panel with
third-party smart-home backends.

Quick Start:
    from panelhub.plugins import PluginBase, DeviceProvider, plugin

    @plugin("myservice")
    class MyServicePlugin(PluginBase, DeviceProvider):
        name = "My Service"

        async def initialize(self, config):
            if not config.settings.get("api_key"):
                raise ConfigError("api_key is required")
            self.config = config

        async def shutdown(self):
            self.config = None

        async def discover_devices(self):
            return []

For more details, see:
- base.py: PluginBase and the optional capability interfaces
- types.py: Shared models and the error taxonomy
- registry.py: PluginRegistry and @plugin decorator
- Plugin examples: homebridge.py, webhook.py
"""

from panelhub.plugins.base import (
    DEFAULT_POLLING_INTERVAL,
    PluginBase,
    PluginCapability,
    DeviceProvider,
    ActionExecutor,
    ConnectionTestable,
    StateReader,
    HttpActionProvider,
)
from panelhub.plugins.registry import PluginRegistry, plugin, discover_plugins
from panelhub.plugins.types import (
    ActionContext,
    ActionResult,
    ButtonBinding,
    ConfigError,
    ConnectionTestResult,
    DeviceCapabilities,
    DeviceState,
    HttpRequest,
    ImportableDevice,
    PersistenceError,
    PluginConfig,
    PluginConfigUpdate,
    PluginError,
    PluginInfo,
    PluginType,
    RoutingError,
    UpstreamError,
)

__all__ = [
    "DEFAULT_POLLING_INTERVAL",
    "PluginBase",
    "PluginCapability",
    "DeviceProvider",
    "ActionExecutor",
    "ConnectionTestable",
    "StateReader",
    "HttpActionProvider",
    "PluginRegistry",
    "plugin",
    "discover_plugins",
    "ActionContext",
    "ActionResult",
    "ButtonBinding",
    "ConfigError",
    "ConnectionTestResult",
    "DeviceCapabilities",
    "DeviceState",
    "HttpRequest",
    "ImportableDevice",
    "PersistenceError",
    "PluginConfig",
    "PluginConfigUpdate",
    "PluginError",
    "PluginInfo",
    "PluginType",
    "RoutingError",
    "UpstreamError",
]
