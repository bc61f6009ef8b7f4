"""
Webhook HTTP-Action Plugin

Simple plugin for devices driven by plain HTTP calls (Shelly/Tasmota style
relays, n8n or Node-RED webhooks). It does not execute anything itself: it
describes the request and the PluginManager sends it.

Configuration (PluginConfig.settings):
    {
        "on_url": "http://relay.local/relay/{external_device_id}?turn=on",
        "off_url": "http://relay.local/relay/{external_device_id}?turn=off",
        "method": "POST",                 # Optional (default: POST)
        "headers": {"X-Api-Key": "..."},  # Optional
        "body": {"source": "panelhub"}    # Optional JSON payload
    }

Only on/off is supported; speed levels are not representable here.
"""

from typing import Optional

from panelhub.config.logging_config import get_logger
from panelhub.plugins.base import PluginBase, HttpActionProvider
from panelhub.plugins.registry import plugin
from panelhub.plugins.types import (
    ButtonBinding,
    ConfigError,
    HttpAction,
    HttpRequest,
    PluginConfig,
    PluginType,
)

logger = get_logger(__name__)

SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE')


@plugin("webhook")
class WebhookPlugin(PluginBase, HttpActionProvider):
    """HTTP-action plugin mapping on/off to configured URLs."""

    name = "Webhook"
    type = PluginType.HTTP_ACTION
    description = "Switch devices by calling an HTTP endpoint for on and off"

    async def initialize(self, config: PluginConfig) -> None:
        settings = config.settings or {}

        if not settings.get("on_url") or not settings.get("off_url"):
            raise ConfigError("Webhook on_url and off_url are required")

        method = str(settings.get("method", "POST")).upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigError(f"Unsupported webhook method: {method}")

        headers = settings.get("headers") or {}
        if not isinstance(headers, dict):
            raise ConfigError("Webhook headers must be an object")

        self.config = config
        logger.info(f"🔌 Webhook plugin configured ({method})")

    async def shutdown(self) -> None:
        self.config = None

    def get_http_config(self, binding: ButtonBinding, action: HttpAction) -> Optional[HttpRequest]:
        if self.config is None or action not in ('on', 'off'):
            return None

        settings = self.config.settings
        template = settings["on_url"] if action == 'on' else settings["off_url"]

        try:
            url = template.format(external_device_id=binding.external_device_id)
        except (KeyError, IndexError, ValueError) as e:
            logger.error(f"❌ Webhook URL template invalid: {e}")
            return None

        return HttpRequest(
            url=url,
            method=str(settings.get("method", "POST")).upper(),
            headers={str(k): str(v) for k, v in (settings.get("headers") or {}).items()},
            body=settings.get("body"),
        )
