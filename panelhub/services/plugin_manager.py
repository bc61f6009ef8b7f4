"""
Plugin Manager Service

Owns the live plugin instances of a hub and everything that happens to them.

Responsibilities:
- Register plugins and keep a config record for each one
- Initialize enabled plugins at startup, shut all plugins down on exit
- Route actions to plugins (with a generic HTTP fallback for http-action plugins)
- Apply configuration updates and the enable/disable/reinitialize transitions
- Run connection tests and state queries

Design:
- One PluginManager per HubContext (no module-level singleton)
- Capabilities are computed once at registration and cached
- Capability calls never raise to the caller; lifecycle calls may
- Per-plugin asyncio.Lock serializes config transitions and connection tests
"""

import asyncio
from typing import Any, Dict, FrozenSet, List, Optional, Union

import httpx

from panelhub.config.logging_config import get_logger
from panelhub.plugins.base import PluginBase, PluginCapability
from panelhub.plugins.types import (
    ActionContext,
    ActionResult,
    ButtonBinding,
    ConnectionTestResult,
    DeviceState,
    HttpRequest,
    ImportableDevice,
    PluginConfig,
    PluginConfigUpdate,
    PluginInfo,
    RoutingError,
)
from panelhub.services.config_store import PluginConfigStore

logger = get_logger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0


class PluginManager:
    """
    Registry and lifecycle owner for plugin instances.

    Usage:
        manager = PluginManager(store=PluginConfigStore(path))
        manager.register_plugin(HomebridgePlugin())
        await manager.initialize_plugins()

        result = await manager.execute_action(ctx)
        await manager.set_plugin_config("homebridge", {"enabled": True, "settings": {...}})

        await manager.shutdown()
    """

    def __init__(
        self,
        store: Optional[PluginConfigStore] = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            store: Config persistence (None keeps configs in memory only)
            http_timeout: Timeout for fallback HTTP actions (seconds)
            transport: Optional httpx transport for fallback HTTP actions (tests)
        """
        self.store = store
        self.http_timeout = http_timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

        # plugin_id -> live instance / persisted config / cached capability set
        self.plugins: Dict[str, PluginBase] = {}
        self.configs: Dict[str, PluginConfig] = {}
        self.capabilities: Dict[str, FrozenSet[PluginCapability]] = {}

        # Track plugin errors for monitoring
        self.error_counts: Dict[str, int] = {}

        self._locks: Dict[str, asyncio.Lock] = {}
        self._initialized = False

        logger.info("🔌 PluginManager initialized")

    # ============================================================
    # Registration and lookup
    # ============================================================

    def register_plugin(self, plugin: PluginBase) -> None:
        """
        Register a plugin instance.

        Creates a disabled default config if none exists. Re-registering an
        id replaces the instance and keeps its config.
        """
        existing = self.plugins.get(plugin.id)
        if existing is not None and existing is not plugin:
            logger.warning(f"⚠️ Plugin '{plugin.id}' already registered, replacing instance")

        self.plugins[plugin.id] = plugin
        self.capabilities[plugin.id] = plugin.capabilities()
        self._locks.setdefault(plugin.id, asyncio.Lock())

        if self.store is not None:
            self.store.register_sensitive_fields(plugin.id, plugin.sensitive_settings)

        if plugin.id not in self.configs:
            self.configs[plugin.id] = self._default_config(plugin)

        logger.info(
            f"🔌 Registered plugin: {plugin.name} ({plugin.id}) "
            f"capabilities={sorted(c.value for c in self.capabilities[plugin.id])}"
        )

    def get_all_plugins(self) -> List[PluginBase]:
        return list(self.plugins.values())

    def get_plugin(self, plugin_id: str) -> Optional[PluginBase]:
        return self.plugins.get(plugin_id)

    def get_capabilities(self, plugin_id: str) -> FrozenSet[PluginCapability]:
        return self.capabilities.get(plugin_id, frozenset())

    def has_capability(self, plugin_id: str, capability: PluginCapability) -> bool:
        return capability in self.get_capabilities(plugin_id)

    def get_device_providers(self) -> List[PluginBase]:
        """Plugins that can discover devices"""
        return [
            p for p in self.plugins.values()
            if self.has_capability(p.id, PluginCapability.DISCOVER_DEVICES)
        ]

    def is_enabled(self, plugin_id: str) -> bool:
        config = self.configs.get(plugin_id)
        return bool(config and config.enabled)

    def describe_plugin(self, plugin_id: str, include_settings: bool = False) -> Optional[PluginInfo]:
        """
        Build the metadata/status view of a plugin.

        Returns:
            PluginInfo, or None if the plugin is not registered
        """
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            return None

        config = self.configs.get(plugin_id)
        caps = self.get_capabilities(plugin_id)

        return PluginInfo(
            id=plugin.id,
            name=plugin.name,
            type=getattr(plugin.type, "value", plugin.type),
            description=plugin.description,
            enabled=bool(config and config.enabled),
            polling_interval=plugin.polling_interval,
            settings=dict(config.settings) if include_settings and config else None,
            has_device_discovery=PluginCapability.DISCOVER_DEVICES in caps,
            has_action_handler=PluginCapability.EXECUTE_ACTION in caps,
            has_connection_test=PluginCapability.TEST_CONNECTION in caps,
            has_state_polling=PluginCapability.GET_DEVICE_STATE in caps,
            has_http_fallback=PluginCapability.GET_HTTP_CONFIG in caps,
        )

    def list_plugins(self) -> List[PluginInfo]:
        return [self.describe_plugin(plugin_id) for plugin_id in self.plugins]

    # ============================================================
    # Bulk lifecycle
    # ============================================================

    async def initialize_plugins(self) -> Dict[str, bool]:
        """
        Load persisted configs and initialize every enabled plugin.

        One plugin failing does not stop the others.

        Returns:
            Dict[str, bool]: plugin_id -> initialized
        """
        results: Dict[str, bool] = {}
        if self._initialized:
            return results

        if self.store is not None:
            loaded = await self.store.load()
            for plugin_id, config in loaded.items():
                config.id = plugin_id
                self.configs[plugin_id] = config

        for plugin_id, plugin in self.plugins.items():
            config = self.configs.get(plugin_id)
            if config is None:
                config = self.configs[plugin_id] = self._default_config(plugin)

            if not config.enabled:
                logger.info(f"🔌 Plugin {plugin.name} disabled")
                results[plugin_id] = False
                continue

            try:
                await plugin.initialize(config)
                logger.info(f"✅ Initialized plugin: {plugin.name}")
                results[plugin_id] = True
            except Exception as e:
                logger.error(f"❌ Failed to initialize plugin {plugin.name}: {e}", exc_info=True)
                self._record_error(plugin_id)
                results[plugin_id] = False

        self._initialized = True
        await self._persist()
        return results

    async def shutdown(self) -> Dict[str, bool]:
        """
        Shut down every registered plugin, isolating individual failures.

        Returns:
            Dict[str, bool]: plugin_id -> shut down cleanly
        """
        logger.info("🔌 Shutting down all plugins...")
        results: Dict[str, bool] = {}

        for plugin_id, plugin in self.plugins.items():
            try:
                await plugin.shutdown()
                logger.info(f"✅ Shutdown plugin: {plugin.name}")
                results[plugin_id] = True
            except Exception as e:
                logger.error(f"❌ Failed to shutdown plugin {plugin.name}: {e}", exc_info=True)
                self._record_error(plugin_id)
                results[plugin_id] = False

        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
        self._http_client = None

        self._initialized = False
        return results

    # ============================================================
    # Discovery and actions
    # ============================================================

    async def discover_devices(self, plugin_id: str) -> List[ImportableDevice]:
        """
        Discover devices through a plugin.

        Raises:
            RoutingError: Unknown plugin, no discovery support, or disabled
            UpstreamError: Backend failure reported by the plugin
        """
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            raise RoutingError(f"Plugin {plugin_id} not found", plugin_id)
        if not self.has_capability(plugin_id, PluginCapability.DISCOVER_DEVICES):
            raise RoutingError(f"Plugin {plugin_id} does not support device discovery", plugin_id)
        if not self.is_enabled(plugin_id):
            raise RoutingError(f"Plugin {plugin_id} is not enabled", plugin_id)

        return await plugin.discover_devices()

    async def execute_action(self, ctx: ActionContext) -> ActionResult:
        """
        Route an action to the plugin named in its binding.

        Never raises: routing and backend failures come back as
        ActionResult(success=False, error=...).
        """
        plugin_id = ctx.binding.plugin_id

        try:
            plugin = self._resolve_enabled(plugin_id)
        except RoutingError as e:
            logger.warning(f"⚠️ Action for {ctx.binding.external_device_id} not routed: {e}")
            return ActionResult(success=False, error=str(e))

        if self.has_capability(plugin_id, PluginCapability.EXECUTE_ACTION):
            try:
                return await plugin.execute_action(ctx)
            except Exception as e:
                logger.error(f"❌ Plugin {plugin.name} raised during action: {e}", exc_info=True)
                self._record_error(plugin_id)
                return ActionResult(success=False, error=f"Plugin {plugin_id} failed to execute action: {e}")

        if self.has_capability(plugin_id, PluginCapability.GET_HTTP_CONFIG):
            # The fallback path is boolean only
            if ctx.speed_level is not None:
                logger.debug(f"Speed level {ctx.speed_level} ignored for http-action plugin {plugin_id}")

            action = 'on' if ctx.new_state else 'off'
            try:
                request = plugin.get_http_config(ctx.binding, action)
            except Exception as e:
                logger.error(f"❌ Plugin {plugin.name} failed to build HTTP request: {e}", exc_info=True)
                self._record_error(plugin_id)
                return ActionResult(success=False, error=f"Plugin {plugin_id} failed to build request: {e}")

            if request is not None:
                return await self._execute_http_request(request, ctx)

        return ActionResult(success=False, error="Plugin does not support action execution")

    async def _execute_http_request(self, request: HttpRequest, ctx: ActionContext) -> ActionResult:
        client = self._get_http_client()

        try:
            response = await client.request(
                request.method,
                request.url,
                headers=request.headers,
                json=request.body,
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ HTTP action {request.method} {request.url} failed: {e}")
            return ActionResult(success=False, error=str(e) or e.__class__.__name__)

        if response.is_success:
            logger.info(f"✅ HTTP action {request.method} {request.url} -> {response.status_code}")
            return ActionResult(success=True, new_state=ctx.new_state)

        return ActionResult(
            success=False,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.http_timeout),
                transport=self._transport,
            )
        return self._http_client

    # ============================================================
    # Configuration
    # ============================================================

    def get_plugin_config(self, plugin_id: str) -> Optional[PluginConfig]:
        return self.configs.get(plugin_id)

    async def set_plugin_config(
        self,
        plugin_id: str,
        update: Union[PluginConfigUpdate, Dict[str, Any]],
    ) -> PluginConfig:
        """
        Merge a partial update into a plugin's config, persist it, and apply
        the resulting lifecycle transition.

        Transition is chosen from the diff:
        - enabled false -> true: initialize (failure propagates)
        - enabled true -> false: shutdown (failure logged)
        - still enabled, settings changed: shutdown + initialize (failure logged)

        An enable becomes visible to readers only after initialize() was attempted.

        Args:
            plugin_id: Plugin to update (the record's id is always pinned to it)
            update: Fields to replace; settings are replaced, not deep-merged

        Returns:
            The merged PluginConfig

        Raises:
            RoutingError: If the plugin is not registered
            Exception: Whatever initialize() raised when enabling
        """
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            raise RoutingError(f"Plugin {plugin_id} not found", plugin_id)

        if not isinstance(update, PluginConfigUpdate):
            update = PluginConfigUpdate.model_validate(update)

        async with self._lock_for(plugin_id):
            existing = self.configs.get(plugin_id) or self._default_config(plugin)

            merged = PluginConfig(
                id=plugin_id,
                name=update.name or existing.name,
                enabled=existing.enabled if update.enabled is None else update.enabled,
                settings=dict(existing.settings if update.settings is None else update.settings),
            )

            enabling = merged.enabled and not existing.enabled

            # Readers see an enable only once initialize() has been attempted
            if not enabling:
                self.configs[plugin_id] = merged
            await self._persist({**self.configs, plugin_id: merged})

            if enabling:
                try:
                    await plugin.initialize(merged)
                    logger.info(f"✅ Initialized plugin: {plugin.name}")
                except Exception as e:
                    logger.error(f"❌ Failed to initialize plugin {plugin.name}: {e}")
                    self._record_error(plugin_id)
                    raise
                finally:
                    self.configs[plugin_id] = merged

            elif existing.enabled and not merged.enabled:
                try:
                    await plugin.shutdown()
                    logger.info(f"🔌 Disabled plugin: {plugin.name}")
                except Exception as e:
                    logger.error(f"❌ Failed to shutdown plugin {plugin.name}: {e}", exc_info=True)
                    self._record_error(plugin_id)

            elif merged.enabled and merged.settings != existing.settings:
                try:
                    await plugin.shutdown()
                    await plugin.initialize(merged)
                    logger.info(f"🔌 Reinitialized plugin: {plugin.name} with new settings")
                except Exception as e:
                    logger.error(f"❌ Failed to reinitialize plugin {plugin.name}: {e}", exc_info=True)
                    self._record_error(plugin_id)

            return merged

    # ============================================================
    # Connection test and state
    # ============================================================

    async def test_connection(self, plugin_id: str) -> ConnectionTestResult:
        """
        Test a plugin's connection.

        A plugin that is not enabled is initialized for the duration of the
        test and always shut down afterwards.
        """
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            return ConnectionTestResult(success=False, message=f"Plugin {plugin_id} not found")

        if not self.has_capability(plugin_id, PluginCapability.TEST_CONNECTION):
            return ConnectionTestResult(success=False, message="Plugin does not support connection testing")

        async with self._lock_for(plugin_id):
            config = self.configs.get(plugin_id)
            if config is None:
                return ConnectionTestResult(success=False, message="Plugin not configured")

            temporary = not config.enabled
            if temporary:
                try:
                    await plugin.initialize(config)
                except Exception as e:
                    await self._safe_shutdown(plugin)
                    return ConnectionTestResult(success=False, message=f"Initialization failed: {e}")

            try:
                return await plugin.test_connection()
            except Exception as e:
                logger.error(f"❌ Connection test for {plugin.name} raised: {e}", exc_info=True)
                return ConnectionTestResult(success=False, message=f"Connection test failed: {e}")
            finally:
                if temporary:
                    await self._safe_shutdown(plugin)

    async def get_device_state(self, binding: ButtonBinding) -> Optional[DeviceState]:
        """
        Read back the state of a bound device.

        Returns None ("unknown", never "off") if the plugin is unregistered,
        disabled, cannot read state, or the read fails.
        """
        plugin = self.plugins.get(binding.plugin_id)
        if plugin is None or not self.has_capability(binding.plugin_id, PluginCapability.GET_DEVICE_STATE):
            return None

        if not self.is_enabled(binding.plugin_id):
            return None

        try:
            return await plugin.get_device_state(binding.external_device_id)
        except Exception as e:
            logger.error(f"❌ Error getting device state for {binding.external_device_id}: {e}")
            return None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get plugin manager statistics.

        Example:
            stats = manager.get_stats()
            # {
            #     'registered_plugins': 2,
            #     'enabled_plugins': 1,
            #     'plugins_by_type': {'device-provider': 1, 'http-action': 1},
            #     'error_counts': {'homebridge': 1}
            # }
        """
        plugins_by_type: Dict[str, int] = {}
        for plugin in self.plugins.values():
            plugin_type = getattr(plugin.type, "value", plugin.type)
            plugins_by_type[plugin_type] = plugins_by_type.get(plugin_type, 0) + 1

        return {
            'registered_plugins': len(self.plugins),
            'enabled_plugins': sum(1 for plugin_id in self.plugins if self.is_enabled(plugin_id)),
            'plugins_by_type': plugins_by_type,
            'error_counts': dict(self.error_counts),
        }

    # ============================================================
    # Internals
    # ============================================================

    @staticmethod
    def _default_config(plugin: PluginBase) -> PluginConfig:
        return PluginConfig(id=plugin.id, name=plugin.name, enabled=False, settings={})

    def _resolve_enabled(self, plugin_id: str) -> PluginBase:
        plugin = self.plugins.get(plugin_id)
        if plugin is None:
            raise RoutingError(f"Plugin {plugin_id} not found", plugin_id)
        if not self.is_enabled(plugin_id):
            raise RoutingError(f"Plugin {plugin_id} is not enabled", plugin_id)
        return plugin

    def _lock_for(self, plugin_id: str) -> asyncio.Lock:
        return self._locks.setdefault(plugin_id, asyncio.Lock())

    def _record_error(self, plugin_id: str) -> None:
        self.error_counts[plugin_id] = self.error_counts.get(plugin_id, 0) + 1

    async def _safe_shutdown(self, plugin: PluginBase) -> None:
        try:
            await plugin.shutdown()
        except Exception as e:
            logger.error(f"❌ Failed to shutdown plugin {plugin.name}: {e}", exc_info=True)
            self._record_error(plugin.id)

    async def _persist(self, configs: Optional[Dict[str, PluginConfig]] = None) -> None:
        if self.store is not None:
            await self.store.save(self.configs if configs is None else configs)
