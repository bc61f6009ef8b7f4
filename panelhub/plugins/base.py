"""
PanelHub Plugin Base Classes

Abstract base class for all PanelHub plugins plus the optional capability
interfaces a plugin may mix in.

Design Philosophy:
- Lightweight: Only id/name/type/initialize/shutdown are mandatory
- Capability-based: Optional features are separate interfaces, not duck-typed methods
- Self-contained: Each plugin owns its backend's wire format and session state
- Validated: Plugins validate their own settings in initialize()
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, List, Optional

import httpx

from panelhub.plugins.types import (
    ActionContext,
    ActionResult,
    ButtonBinding,
    ConnectionTestResult,
    DeviceState,
    HttpAction,
    HttpRequest,
    ImportableDevice,
    PluginConfig,
    PluginType,
)

if TYPE_CHECKING:
    from panelhub.config.hub import HubSettings


# Preferred polling interval (seconds) when a plugin does not declare one
DEFAULT_POLLING_INTERVAL = 30.0


class PluginCapability(str, Enum):
    """Optional capabilities a plugin can implement"""

    DISCOVER_DEVICES = "discover_devices"
    EXECUTE_ACTION = "execute_action"
    TEST_CONNECTION = "test_connection"
    GET_DEVICE_STATE = "get_device_state"
    GET_HTTP_CONFIG = "get_http_config"


class PluginBase(ABC):
    """
    Abstract base class for PanelHub plugins.

    A plugin integrates one external smart-home backend. The Plugin Manager
    owns plugin instances and drives their lifecycle:

    1. initialize(config) - Validate settings, reset session state (no network I/O required)
    2. <capability calls>  - discover_devices(), execute_action(), ...
    3. shutdown()         - Release session state; safe to call at any time

    initialize() may be called again after shutdown() (re-enable, settings change).

    Optional capabilities are expressed by also inheriting from DeviceProvider,
    ActionExecutor, ConnectionTestable, StateReader and/or HttpActionProvider.
    """

    id: str  # Must be set by subclass (e.g., "homebridge")
    name: str
    type: PluginType = PluginType.DEVICE_PROVIDER
    description: Optional[str] = None

    # Hint for external pollers (seconds); the manager does not enforce it
    polling_interval: Optional[float] = DEFAULT_POLLING_INTERVAL

    # Setting keys encrypted at rest by the config store
    sensitive_settings: FrozenSet[str] = frozenset()

    def __init__(self):
        """Initialize plugin instance (before configuration)"""
        self.config: Optional[PluginConfig] = None

    @classmethod
    def from_settings(
        cls,
        settings: "HubSettings",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PluginBase":
        """
        Build an instance from hub settings.

        Plugins that talk to their backend themselves override this to pick up
        timeouts and the (test) transport.
        """
        return cls()

    @abstractmethod
    async def initialize(self, config: PluginConfig) -> None:
        """
        Validate settings and prepare the plugin for use.

        Args:
            config: Persisted plugin configuration

        Raises:
            ConfigError: If required settings are missing or invalid
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Release all cached session state.

        Must not raise if initialize() never succeeded, and must be safe
        to call repeatedly.
        """
        pass

    @property
    def is_initialized(self) -> bool:
        return self.config is not None

    @classmethod
    def capabilities(cls) -> FrozenSet[PluginCapability]:
        """Return the set of optional capabilities this plugin class implements"""
        caps = set()
        if issubclass(cls, DeviceProvider):
            caps.add(PluginCapability.DISCOVER_DEVICES)
        if issubclass(cls, ActionExecutor):
            caps.add(PluginCapability.EXECUTE_ACTION)
        if issubclass(cls, ConnectionTestable):
            caps.add(PluginCapability.TEST_CONNECTION)
        if issubclass(cls, StateReader):
            caps.add(PluginCapability.GET_DEVICE_STATE)
        if issubclass(cls, HttpActionProvider):
            caps.add(PluginCapability.GET_HTTP_CONFIG)
        return frozenset(caps)

    def __repr__(self) -> str:
        """String representation of plugin"""
        return f"<{self.__class__.__name__}(id='{self.id}', initialized={self.is_initialized})>"


class DeviceProvider(ABC):
    """Plugin can list controllable devices from its backend."""

    @abstractmethod
    async def discover_devices(self) -> List[ImportableDevice]:
        """
        Fetch a fresh snapshot of importable devices.

        Raises:
            UpstreamError: On transport or authentication failure
        """
        pass


class ActionExecutor(ABC):
    """Plugin can execute on/off/speed actions itself."""

    @abstractmethod
    async def execute_action(self, ctx: ActionContext) -> ActionResult:
        """
        Execute an action against the backend.

        Backend failures are reported in ActionResult.error, never raised.
        """
        pass


class ConnectionTestable(ABC):
    """Plugin can verify connectivity and credentials."""

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        """Test the connection. Never raises."""
        pass


class StateReader(ABC):
    """Plugin can read back the current state of a device."""

    @abstractmethod
    async def get_device_state(self, external_device_id: str) -> Optional[DeviceState]:
        """
        Fetch the current state of an external device.

        Returns:
            DeviceState, or None if the state could not be determined
            (None does not mean "off")
        """
        pass


class HttpActionProvider(ABC):
    """Plugin describes its action as a plain HTTP request; the manager sends it."""

    @abstractmethod
    def get_http_config(self, binding: ButtonBinding, action: HttpAction) -> Optional[HttpRequest]:
        """
        Build the request for an action.

        Returns:
            HttpRequest, or None if the action is not supported
        """
        pass
