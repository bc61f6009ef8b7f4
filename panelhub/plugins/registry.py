"""
PanelHub Plugin Registry

Catalog of available plugin classes. Plugins self-register using the
@plugin decorator; the hub context instantiates every registered class at
startup and hands the instances to the PluginManager.

Usage:
    from panelhub.plugins.registry import plugin

    @plugin("homebridge")
    class HomebridgePlugin(PluginBase, DeviceProvider):
        ...

    PluginRegistry.get_plugin("homebridge")  # Returns HomebridgePlugin class

The registry only holds classes. Live instances and their configuration are
owned by the PluginManager of a HubContext.
"""

from typing import Dict, List, Type, Optional
import logging

logger = logging.getLogger(__name__)


class PluginRegistry:
    """
    Global catalog of PanelHub plugin classes.

    Design Pattern: Similar to Flask blueprints or pytest plugins.
    """

    _plugins: Dict[str, Type] = {}

    @classmethod
    def register(cls, plugin_class: Type) -> None:
        """
        Register a plugin class.

        Args:
            plugin_class: Plugin class (must inherit from PluginBase)

        Raises:
            ValueError: If the class does not define an 'id' attribute
        """
        plugin_id = getattr(plugin_class, 'id', None)
        if not plugin_id:
            raise ValueError(
                f"Plugin class {plugin_class.__name__} must define 'id' attribute"
            )

        if plugin_id in cls._plugins:
            existing_class = cls._plugins[plugin_id]
            if existing_class is not plugin_class:
                logger.warning(
                    f"⚠️ Plugin '{plugin_id}' already registered "
                    f"({existing_class.__name__}), overriding with {plugin_class.__name__}"
                )

        cls._plugins[plugin_id] = plugin_class
        logger.debug(f"🔌 Registered plugin class: {plugin_id} ({plugin_class.__name__})")

    @classmethod
    def unregister(cls, plugin_id: str) -> bool:
        """
        Unregister a plugin class.

        Returns:
            bool: True if plugin was registered and removed, False otherwise
        """
        if plugin_id in cls._plugins:
            del cls._plugins[plugin_id]
            logger.debug(f"🔌 Unregistered plugin class: {plugin_id}")
            return True
        return False

    @classmethod
    def get_plugin(cls, plugin_id: str) -> Optional[Type]:
        """Get plugin class by id, or None if not found"""
        return cls._plugins.get(plugin_id)

    @classmethod
    def list_plugins(cls) -> List[str]:
        """List all registered plugin ids"""
        return list(cls._plugins.keys())

    @classmethod
    def get_all_plugins(cls) -> Dict[str, Type]:
        """Get mapping plugin_id -> plugin_class"""
        return dict(cls._plugins)

    @classmethod
    def is_registered(cls, plugin_id: str) -> bool:
        return plugin_id in cls._plugins

    @classmethod
    def clear(cls) -> None:
        """
        Clear all registered plugins.

        WARNING: This is mainly for testing. Use with caution.
        """
        cls._plugins.clear()
        logger.warning("🔌 Cleared all plugin registrations")


def plugin(plugin_id: str):
    """
    Decorator to register a plugin class.

    Sets the 'id' attribute on the class, registers it in PluginRegistry
    and returns the unmodified class.

    Example:
        @plugin("webhook")
        class WebhookPlugin(PluginBase, HttpActionProvider):
            ...
    """
    def decorator(cls):
        cls.id = plugin_id
        PluginRegistry.register(cls)
        return cls

    return decorator


def discover_plugins(package_name: str = "panelhub.plugins") -> int:
    """
    Import all modules in a package so their @plugin decorators run.

    Args:
        package_name: Python package to scan (default: "panelhub.plugins")

    Returns:
        int: Number of newly registered plugins
    """
    import importlib
    import pkgutil

    try:
        package = importlib.import_module(package_name)
    except ImportError:
        logger.warning(f"⚠️ Could not import package {package_name} for plugin discovery")
        return 0

    before_count = len(PluginRegistry.list_plugins())

    for _importer, modname, _ispkg in pkgutil.walk_packages(
        path=package.__path__,
        prefix=package.__name__ + ".",
    ):
        try:
            importlib.import_module(modname)
        except Exception as e:
            logger.error(f"❌ Error importing plugin module {modname}: {e}")

    discovered = len(PluginRegistry.list_plugins()) - before_count

    if discovered > 0:
        logger.info(f"🔌 Discovered {discovered} plugins in {package_name}")

    return discovered
