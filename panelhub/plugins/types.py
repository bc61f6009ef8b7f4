"""
Type definitions for the PanelHub plugin runtime.

Shared data model passed between the Plugin Manager, plugins and the
surrounding system (HTTP routes, state poller, scene engine).
"""

import time
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


DeviceType = Literal['light', 'switch', 'fan', 'outlet']
HttpMethod = Literal['GET', 'POST', 'PUT', 'DELETE']
HttpAction = Literal['on', 'off', 'toggle']


class PluginType(str, Enum):
    """Declared plugin category (informational, used by list views)"""

    DEVICE_PROVIDER = "device-provider"
    ACTION_HANDLER = "action-handler"
    HTTP_ACTION = "http-action"


class PluginConfig(BaseModel):
    """Persisted per-plugin configuration (one record in plugins.json)."""

    id: str = Field(..., description="Stable plugin identifier, matches Plugin.id")
    name: str = Field(..., description="Display name")
    enabled: bool = Field(default=False)
    settings: Dict[str, Any] = Field(default_factory=dict, description="Plugin-opaque settings")


class PluginConfigUpdate(BaseModel):
    """Partial update accepted by PluginManager.set_plugin_config()."""

    model_config = ConfigDict(extra='ignore')

    name: Optional[str] = None
    enabled: Optional[bool] = None
    settings: Optional[Dict[str, Any]] = None


class DeviceCapabilities(BaseModel):
    """Functions a discovered device supports."""

    on: bool = False
    brightness: bool = False
    speed: bool = False


class ImportableDevice(BaseModel):
    """Device discovered from an external backend, normalized."""

    id: str = Field(..., description="External device id, stable across polls")
    name: str
    type: DeviceType
    room: Optional[str] = None
    capabilities: DeviceCapabilities
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Backend-specific identifiers")


class ButtonBinding(BaseModel):
    """Association between a panel button and an external device."""

    plugin_id: str
    external_device_id: str
    device_type: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ActionContext(BaseModel):
    """Context passed to plugins when executing an action."""

    binding: ButtonBinding
    new_state: bool
    speed_level: Optional[int] = Field(default=None, ge=0, le=100)

    # Origin of the action on the panel side (logging only)
    device_id: Optional[str] = None
    button_id: Optional[int] = None
    timestamp: float = Field(default_factory=time.time)


class ActionResult(BaseModel):
    """Result returned from action execution."""

    success: bool
    new_state: Optional[bool] = None
    error: Optional[str] = None


class DeviceState(BaseModel):
    """State of an external device as read back from its backend."""

    state: bool
    speed_level: Optional[int] = None


class HttpRequest(BaseModel):
    """Declarative request for plugins that only describe their HTTP action."""

    url: str
    method: HttpMethod = 'POST'
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None


class ConnectionTestResult(BaseModel):
    """Outcome of a plugin connectivity test."""

    success: bool
    message: str


class PluginInfo(BaseModel):
    """Plugin metadata and status exposed to the surrounding system."""

    id: str
    name: str
    type: str
    description: Optional[str] = None
    enabled: bool = False
    polling_interval: Optional[float] = None
    settings: Optional[Dict[str, Any]] = None
    has_device_discovery: bool = False
    has_action_handler: bool = False
    has_connection_test: bool = False
    has_state_polling: bool = False
    has_http_fallback: bool = False


class PluginError(Exception):
    """Base exception for plugin runtime errors."""
    pass


class ConfigError(PluginError):
    """Missing or invalid plugin settings at initialize time."""
    pass


class UpstreamError(PluginError):
    """Non-2xx response or transport failure talking to an external backend."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RoutingError(PluginError):
    """Unknown, disabled or incapable plugin targeted by a request."""

    def __init__(self, message: str, plugin_id: Optional[str] = None):
        super().__init__(message)
        self.plugin_id = plugin_id


class PersistenceError(PluginError):
    """Plugin configuration could not be read or written."""
    pass
