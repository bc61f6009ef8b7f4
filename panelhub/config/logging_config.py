"""
Tiered Logging Configuration for PanelHub

Provides a flexible logging system with 5 levels:
- TRACE (5): Ultra-verbose debugging (raw backend payloads)
- DEBUG (10): Detailed debugging (cache hits, state changes)
- INFO (20): Standard operational messages (plugin lifecycle, discovery counts)
- WARN (30): Warnings (recoverable errors, fallbacks)
- ERROR (40): Errors (exceptions, failures)

Environment Variables:
- LOG_LEVEL: Global log level (TRACE, DEBUG, INFO, WARN, ERROR) [default: INFO]
- LOG_LEVEL_MANAGER: Override for the plugin manager
- LOG_LEVEL_HOMEBRIDGE: Override for the Homebridge plugin
- LOG_LEVEL_WEBHOOK: Override for the webhook plugin
- LOG_LEVEL_STORE: Override for the plugin config store

Example Usage:
    from panelhub.config.logging_config import get_logger

    logger = get_logger(__name__)
    logger.trace("🔍 Raw accessory: %s", accessory)
    logger.info("✅ Plugin initialized")
"""

import logging
import os


# Define custom TRACE level (more verbose than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self, message, *args, **kwargs):
    """Log a message with severity 'TRACE'."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


# Add trace method to Logger class
logging.Logger.trace = trace


# Module name mapping: Python module path → Logical service name
MODULE_NAME_MAP = {
    "panelhub.services.plugin_manager": "panelhub.manager",
    "panelhub.services.config_store": "panelhub.store",
    "panelhub.plugins.homebridge": "panelhub.homebridge",
    "panelhub.plugins.webhook": "panelhub.webhook",
}

SERVICE_OVERRIDES = ["MANAGER", "HOMEBRIDGE", "WEBHOOK", "STORE"]


def get_log_level(module_name: str, default: str = "INFO") -> int:
    """
    Get the log level for a module, checking both module-specific and global env vars.

    Priority:
    1. Module-specific env var (LOG_LEVEL_MANAGER, LOG_LEVEL_HOMEBRIDGE, etc.)
    2. Global LOG_LEVEL env var
    3. Default level (INFO)
    """
    logical_name = MODULE_NAME_MAP.get(module_name)

    if logical_name:
        service_name = logical_name.split(".")[-1].upper()
        module_level = os.getenv(f"LOG_LEVEL_{service_name}")
        if module_level:
            return _parse_log_level(module_level)

    global_level = os.getenv("LOG_LEVEL")
    if global_level:
        return _parse_log_level(global_level)

    return _parse_log_level(default)


def _parse_log_level(level_str: str) -> int:
    """Parse log level string (TRACE, DEBUG, INFO, WARN, ERROR) to numeric value"""
    level_map = {
        "TRACE": TRACE,
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARN": logging.WARNING,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    return level_map.get(level_str.upper(), logging.INFO)


def configure_logging(default_level: str = "INFO") -> None:
    """
    Configure the root logger.

    Call once at process startup, before building the hub context.
    """
    global_level = os.getenv("LOG_LEVEL", default_level)
    numeric_level = _parse_log_level(global_level)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.info(f"🚀 Logging system initialized (global level: {global_level})")

    module_overrides = []
    for service in SERVICE_OVERRIDES:
        override = os.getenv(f"LOG_LEVEL_{service}")
        if override:
            module_overrides.append(f"{service}={override}")

    if module_overrides:
        root_logger.info(f"📋 Module overrides: {', '.join(module_overrides)}")


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a module with appropriate log level.

    Args:
        module_name: Python module name (use __name__)
    """
    logger = logging.getLogger(module_name)
    logger.setLevel(get_log_level(module_name))
    return logger
