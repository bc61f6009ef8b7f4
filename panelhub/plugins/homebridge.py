"""
Homebridge Device Provider Plugin

Imports and controls HomeKit accessories exposed by a Homebridge server
(homebridge-config-ui-x REST API).

Configuration (PluginConfig.settings):
    {
        "server_url": "http://homebridge.local:8581",   # "serverUrl" also accepted
        "username": "admin",
        "password": "..."            # Encrypted in plugins.json
    }

Backend endpoints used:
    POST /api/auth/login            -> {access_token, expires_in}
    GET  /api/accessories           -> [accessory, ...]
    GET  /api/accessories/layout    -> {rooms: [{name, services: [{uniqueId, ...}]}]}
    GET  /api/accessories/{id}      -> accessory
    PUT  /api/accessories/{id}      <- {characteristicType, value}

Session handling:
- Authentication is lazy (first backend call after initialize)
- Tokens are cached until TOKEN_REFRESH_BUFFER seconds before expiry
- Concurrent callers racing on an expired token share one login request
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from panelhub.config.logging_config import get_logger
from panelhub.plugins.base import (
    PluginBase,
    DeviceProvider,
    ActionExecutor,
    ConnectionTestable,
    StateReader,
)
from panelhub.plugins.registry import plugin
from panelhub.plugins.types import (
    ActionContext,
    ActionResult,
    ConfigError,
    ConnectionTestResult,
    DeviceCapabilities,
    DeviceState,
    DeviceType,
    ImportableDevice,
    PluginConfig,
    PluginType,
    UpstreamError,
)

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
TOKEN_REFRESH_BUFFER = 300.0

# Characteristic type tags
CHAR_ON = "On"
CHAR_BRIGHTNESS = "Brightness"
CHAR_ROTATION_SPEED = "RotationSpeed"


def map_device_type(human_type: str) -> Optional[DeviceType]:
    """
    Map a Homebridge humanType to a panel device type.

    Case-insensitive substring match in priority order; returns None for
    unsupported types.
    """
    value = (human_type or "").lower()
    if "lightbulb" in value or "light" in value:
        return "light"
    if "switch" in value:
        return "switch"
    if "fan" in value:
        return "fan"
    if "outlet" in value:
        return "outlet"
    return None


def get_capabilities(characteristics: List[Dict[str, Any]]) -> DeviceCapabilities:
    """Derive capabilities from the writable characteristics of a service"""
    caps = DeviceCapabilities()

    for char in characteristics or []:
        if not char.get("canWrite"):
            continue
        char_type = char.get("type")
        if char_type == CHAR_ON:
            caps.on = True
        elif char_type == CHAR_BRIGHTNESS:
            caps.brightness = True
        elif char_type == CHAR_ROTATION_SPEED:
            caps.speed = True

    return caps


def coerce_on_value(value: Any) -> bool:
    """Decode the On characteristic; anything but 1/True/"1"/"true" is off"""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value in ("1", "true")
    return False


def coerce_speed_value(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


@plugin("homebridge")
class HomebridgePlugin(PluginBase, DeviceProvider, ActionExecutor, ConnectionTestable, StateReader):
    """
    Device provider backed by a Homebridge server.

    State machine per instance:
        Uninitialized -> Initialized (session possibly stale) -> Shutdown

    initialize() only validates settings and clears the previous session;
    the first backend call authenticates.
    """

    name = "Homebridge"
    type = PluginType.DEVICE_PROVIDER
    description = "Import and control devices from Homebridge"
    sensitive_settings = frozenset({"password"})

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        token_refresh_buffer: float = TOKEN_REFRESH_BUFFER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Bound on every outbound request (seconds)
            token_refresh_buffer: Refresh cached tokens this long before expiry
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        super().__init__()
        self.timeout = timeout
        self.token_refresh_buffer = token_refresh_buffer
        self._transport = transport

        self._base_url: Optional[str] = None
        self._client: Optional[httpx.AsyncClient] = None

        # Session cache (private, never persisted)
        self._token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._token_lock = asyncio.Lock()

        # Bumped on every reset; a login started under an older generation is discarded
        self._session_generation = 0

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "HomebridgePlugin":
        return cls(
            timeout=settings.http_timeout,
            token_refresh_buffer=settings.token_refresh_buffer,
            transport=transport,
        )

    # ============================================================
    # Lifecycle
    # ============================================================

    async def initialize(self, config: PluginConfig) -> None:
        settings = config.settings or {}

        server_url = settings.get("server_url") or settings.get("serverUrl")
        if not server_url or not isinstance(server_url, str):
            raise ConfigError("Homebridge server URL is required")
        if not settings.get("username") or not settings.get("password"):
            raise ConfigError("Homebridge username and password are required")

        # Re-initialization drops any session bound to the old settings
        await self._reset_session()

        self.config = config
        self._base_url = server_url.rstrip("/")
        logger.info(f"🔌 Homebridge plugin configured for {self._base_url}")

    async def shutdown(self) -> None:
        await self._reset_session()
        self.config = None
        self._base_url = None

    async def _reset_session(self) -> None:
        self._session_generation += 1
        self._token = None
        self._token_expiry = 0.0
        self._token_lock = asyncio.Lock()
        if self._client is not None:
            if not self._client.is_closed:
                await self._client.aclose()
            self._client = None

    # ============================================================
    # Transport and session
    # ============================================================

    def _require_config(self) -> PluginConfig:
        if self.config is None or not self._base_url:
            raise ConfigError("Homebridge plugin is not initialized")
        return self.config

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client for the configured server."""
        self._require_config()
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def _token_is_fresh(self) -> bool:
        return self._token is not None and time.time() < self._token_expiry - self.token_refresh_buffer

    async def _get_token(self) -> str:
        """
        Return a valid bearer token, logging in if needed.

        Raises:
            UpstreamError: If authentication fails
        """
        if self._token_is_fresh():
            return self._token

        async with self._token_lock:
            # Another caller may have refreshed while we waited
            if self._token_is_fresh():
                return self._token
            return await self._login()

    async def _login(self) -> str:
        generation = self._session_generation
        settings = self._require_config().settings
        client = await self._get_client()

        try:
            response = await client.post(
                "/api/auth/login",
                json={"username": settings.get("username"), "password": settings.get("password")},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Authentication request failed: {e}")

        if not response.is_success:
            raise UpstreamError(
                f"Authentication failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
            token = data["access_token"]
            expires_in = float(data["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(f"Authentication response malformed: {e}", status_code=response.status_code)

        if generation != self._session_generation:
            # Settings changed or plugin shut down while the login was in flight
            raise UpstreamError("Homebridge session was reset during authentication")

        self._token = token
        self._token_expiry = time.time() + expires_in

        logger.info("✅ Homebridge: Authenticated successfully")
        return token

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send an authenticated request.

        Raises:
            UpstreamError: On authentication or transport failure
        """
        token = await self._get_token()
        client = await self._get_client()

        try:
            return await client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Homebridge request {method} {path} failed: {e}")

    # ============================================================
    # Discovery
    # ============================================================

    async def _get_room_layout(self) -> Dict[str, str]:
        """Fetch uniqueId -> room name; best-effort, empty on any failure"""
        try:
            response = await self._request("GET", "/api/accessories/layout")
            if not response.is_success:
                logger.info(f"Homebridge: Room layout not available ({response.status_code})")
                return {}

            room_map: Dict[str, str] = {}
            for room in response.json().get("rooms") or []:
                for service in room.get("services") or []:
                    if service.get("uniqueId"):
                        room_map[service["uniqueId"]] = room.get("name")
            return room_map

        except Exception as e:
            logger.warning(f"⚠️ Homebridge: Could not fetch room layout: {e}")
            return {}

    async def discover_devices(self) -> List[ImportableDevice]:
        response = await self._request("GET", "/api/accessories")

        if not response.is_success:
            raise UpstreamError(
                f"Failed to fetch accessories: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            accessories = response.json()
        except ValueError as e:
            raise UpstreamError(f"Accessory list malformed: {e}", status_code=response.status_code)

        room_map = await self._get_room_layout()
        devices: List[ImportableDevice] = []

        for accessory in accessories or []:
            device_type = map_device_type(accessory.get("humanType"))
            if not device_type:
                continue

            capabilities = get_capabilities(accessory.get("serviceCharacteristics"))
            if not capabilities.on:
                continue

            unique_id = accessory.get("uniqueId")
            if not unique_id:
                continue

            info = accessory.get("accessoryInformation") or {}
            logger.trace(f"🔍 Homebridge accessory: {accessory}")

            devices.append(ImportableDevice(
                id=unique_id,
                name=accessory.get("serviceName") or info.get("Name") or "Unknown Device",
                type=device_type,
                room=room_map.get(unique_id),
                capabilities=capabilities,
                metadata={
                    "aid": accessory.get("aid"),
                    "iid": accessory.get("iid"),
                    "uuid": accessory.get("uuid"),
                    "humanType": accessory.get("humanType"),
                    "manufacturer": info.get("Manufacturer"),
                    "model": info.get("Model"),
                },
            ))

        logger.info(f"✅ Homebridge: Discovered {len(devices)} controllable devices")
        return devices

    # ============================================================
    # Actions and state
    # ============================================================

    async def execute_action(self, ctx: ActionContext) -> ActionResult:
        self._require_config()
        external_id = ctx.binding.external_device_id

        characteristic_type = CHAR_ON
        value: int = 1 if ctx.new_state else 0

        # Speed replaces on/off for fans; never both in one call
        if ctx.speed_level is not None and ctx.binding.device_type == "fan":
            characteristic_type = CHAR_ROTATION_SPEED
            value = ctx.speed_level

        try:
            response = await self._request(
                "PUT",
                f"/api/accessories/{external_id}",
                json={"characteristicType": characteristic_type, "value": value},
            )
        except UpstreamError as e:
            return ActionResult(success=False, error=f"Failed to execute action: {e}")

        if not response.is_success:
            return ActionResult(
                success=False,
                error=f"Homebridge API error: {response.status_code} {response.text}",
            )

        logger.info(f"✅ Homebridge: Set {external_id} {characteristic_type}={value}")
        return ActionResult(success=True, new_state=ctx.new_state)

    async def get_device_state(self, external_device_id: str) -> Optional[DeviceState]:
        try:
            response = await self._request("GET", f"/api/accessories/{external_device_id}")
            if not response.is_success:
                logger.info(
                    f"Homebridge: Failed to get state for {external_device_id}: {response.status_code}"
                )
                return None

            accessory = response.json()
            characteristics = accessory.get("serviceCharacteristics") or []
            on_char = next((c for c in characteristics if c.get("type") == CHAR_ON), None)
            speed_char = next((c for c in characteristics if c.get("type") == CHAR_ROTATION_SPEED), None)

            state = coerce_on_value(on_char.get("value")) if on_char else False
            speed_level = coerce_speed_value(speed_char.get("value")) if speed_char else None

            logger.debug(
                f"Homebridge: Device {accessory.get('serviceName') or external_device_id[:12]} "
                f"On.value={on_char.get('value') if on_char else None}"
            )
            return DeviceState(state=state, speed_level=speed_level)

        except Exception as e:
            logger.error(f"❌ Homebridge: Error fetching state for {external_device_id}: {e}")
            return None

    # ============================================================
    # Connection test
    # ============================================================

    async def test_connection(self) -> ConnectionTestResult:
        try:
            response = await self._request("GET", "/api/accessories")

            if not response.is_success:
                return ConnectionTestResult(
                    success=False,
                    message=f"API error: {response.status_code} {response.reason_phrase}",
                )

            accessories = response.json()
            return ConnectionTestResult(
                success=True,
                message=f"Connected to Homebridge. Found {len(accessories)} accessories.",
            )

        except Exception as e:
            return ConnectionTestResult(success=False, message=f"Connection failed: {e}")
