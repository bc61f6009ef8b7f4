"""
Hub context factory.

Builds the explicit context object handed to every consumer of the plugin
runtime (HTTP handlers, state poller, scene engine) instead of module-level
singletons. Tests build one isolated context per test case.

Usage:
    ctx = await create_hub_context()
    try:
        devices = await ctx.manager.discover_devices("homebridge")
    finally:
        await close_hub_context(ctx)
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from panelhub.config.hub import HubSettings, get_hub_settings
from panelhub.plugins.base import PluginBase
from panelhub.plugins.registry import PluginRegistry, discover_plugins
from panelhub.services.config_store import PluginConfigStore
from panelhub.services.plugin_manager import PluginManager

logger = logging.getLogger(__name__)


@dataclass
class HubContext:
    """Everything a consumer of the plugin runtime needs."""

    settings: HubSettings
    store: PluginConfigStore
    manager: PluginManager


def build_registered_plugins(
    settings: HubSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list:
    """
    Instantiate every plugin class in the registry.

    Each class builds itself from the hub settings (PluginBase.from_settings).
    """
    discover_plugins("panelhub.plugins")

    plugins = []
    for plugin_id, plugin_class in PluginRegistry.get_all_plugins().items():
        plugins.append(plugin_class.from_settings(settings, transport=transport))
        logger.debug(f"🏭 Instantiated plugin {plugin_id}")

    return plugins


async def create_hub_context(
    settings: Optional[HubSettings] = None,
    plugins: Optional[Iterable[PluginBase]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HubContext:
    """
    Create and start a hub context.

    Args:
        settings: Hub settings (default: loaded from environment)
        plugins: Plugin instances to register (default: every registered plugin class)
        transport: Optional httpx transport shared by plugins and the manager (tests)

    Returns:
        HubContext with enabled plugins initialized
    """
    settings = settings or get_hub_settings()
    logger.info(f"🏭 Creating hub context (data: {settings.plugins_path})")

    store = PluginConfigStore(settings.plugins_path)
    manager = PluginManager(
        store=store,
        http_timeout=settings.http_timeout,
        transport=transport,
    )

    if plugins is None:
        plugins = build_registered_plugins(settings, transport=transport)

    for plugin in plugins:
        manager.register_plugin(plugin)

    results = await manager.initialize_plugins()
    started = [plugin_id for plugin_id, ok in results.items() if ok]
    logger.info(f"✅ Hub context ready: {len(manager.plugins)} plugins, {len(started)} initialized")

    return HubContext(settings=settings, store=store, manager=manager)


async def close_hub_context(ctx: HubContext) -> None:
    """Shut down all plugins of a context."""
    await ctx.manager.shutdown()
