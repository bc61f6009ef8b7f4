"""
Unit tests for hub wiring

Tests HubSettings loading, the logging level resolution and the
HubContext factory (isolated context per test, persisted configs
surviving a restart).
"""
import logging
from unittest.mock import patch

import pytest

from panelhub.config import configure_logging
from panelhub.config.hub import HubSettings, get_hub_settings
from panelhub.config.logging_config import TRACE, get_log_level, get_logger
from panelhub.plugins.homebridge import HomebridgePlugin
from panelhub.plugins.webhook import WebhookPlugin
from panelhub.services.factory import (
    build_registered_plugins,
    close_hub_context,
    create_hub_context,
)
from tests.mocks.mock_plugins import RecordingPlugin


# ============================================================
# Settings Tests
# ============================================================

@pytest.mark.unit
class TestHubSettings:

    def test_defaults(self):
        settings = get_hub_settings()

        assert settings.http_timeout == 10.0
        assert settings.token_refresh_buffer == 300.0
        assert str(settings.plugins_path).endswith("plugins.json")

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PANELHUB_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PANELHUB_PLUGINS_FILE", "hub.json")
        monkeypatch.setenv("PANELHUB_HTTP_TIMEOUT", "3.5")
        monkeypatch.setenv("PANELHUB_TOKEN_REFRESH_BUFFER", "60")

        settings = HubSettings.from_env()

        assert settings.plugins_path == tmp_path / "hub.json"
        assert settings.http_timeout == 3.5
        assert settings.token_refresh_buffer == 60.0

    def test_settings_cached(self):
        assert get_hub_settings() is get_hub_settings()

    @pytest.mark.parametrize("kwargs", [
        {"http_timeout": 0.1},
        {"http_timeout": 500},
        {"token_refresh_buffer": -1},
        {"plugins_file": ""},
    ])
    def test_validate_rejects(self, kwargs):
        with pytest.raises(ValueError):
            HubSettings(**kwargs).validate()

    def test_invalid_env_rejected(self, monkeypatch):
        monkeypatch.setenv("PANELHUB_HTTP_TIMEOUT", "0")

        with pytest.raises(ValueError, match="http_timeout"):
            HubSettings.from_env()


# ============================================================
# Logging Tests
# ============================================================

@pytest.mark.unit
class TestLogging:

    def test_default_level_is_info(self):
        assert get_log_level("panelhub.plugins.homebridge") == logging.INFO

    def test_global_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        assert get_log_level("panelhub.services.plugin_manager") == logging.DEBUG

    def test_service_override_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARN")
        monkeypatch.setenv("LOG_LEVEL_HOMEBRIDGE", "TRACE")

        assert get_log_level("panelhub.plugins.homebridge") == TRACE
        assert get_log_level("panelhub.plugins.webhook") == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        assert get_log_level("panelhub.services.config_store") == logging.INFO

    def test_logger_has_trace(self):
        logger = get_logger("panelhub.test")

        assert callable(logger.trace)

    def test_get_logger_applies_override(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL_STORE", "ERROR")

        assert get_logger("panelhub.services.config_store").level == logging.ERROR

    def test_configure_logging_with_overrides(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL_MANAGER", "DEBUG")

        with patch("panelhub.config.logging_config.logging.basicConfig") as mock_basic_config:
            configure_logging("WARN")

        assert mock_basic_config.call_args.kwargs["level"] == logging.WARNING


# ============================================================
# Hub Context Tests
# ============================================================

@pytest.mark.unit
class TestHubContext:

    def test_build_registered_plugins(self, hub_settings):
        plugins = {p.id: p for p in build_registered_plugins(hub_settings)}

        assert isinstance(plugins["homebridge"], HomebridgePlugin)
        assert isinstance(plugins["webhook"], WebhookPlugin)
        assert plugins["homebridge"].timeout == 2.0
        assert plugins["homebridge"].token_refresh_buffer == 300.0

    @pytest.mark.asyncio
    async def test_contexts_are_isolated(self, hub_settings, tmp_path):
        other_settings = HubSettings(data_dir=str(tmp_path / "other"))

        first = await create_hub_context(hub_settings, plugins=[RecordingPlugin()])
        second = await create_hub_context(other_settings, plugins=[RecordingPlugin()])

        await first.manager.set_plugin_config("recording", {"enabled": True})

        assert first.manager is not second.manager
        assert second.manager.is_enabled("recording") is False

        await close_hub_context(first)
        await close_hub_context(second)

    @pytest.mark.asyncio
    async def test_enabled_plugins_restored_on_restart(self, hub_settings):
        # ARRANGE
        ctx = await create_hub_context(hub_settings, plugins=[RecordingPlugin()])
        await ctx.manager.set_plugin_config("recording", {"enabled": True, "settings": {"a": 1}})
        await close_hub_context(ctx)

        # ACT
        restarted_plugin = RecordingPlugin()
        restarted = await create_hub_context(hub_settings, plugins=[restarted_plugin])

        # ASSERT
        assert restarted.manager.is_enabled("recording") is True
        assert restarted_plugin.initialize_calls[0].settings == {"a": 1}

        await close_hub_context(restarted)

    @pytest.mark.asyncio
    async def test_homebridge_end_to_end(self, hub_settings, homebridge_server, make_action):
        # ARRANGE
        ctx = await create_hub_context(hub_settings, transport=homebridge_server.transport)
        assert ctx.manager.is_enabled("homebridge") is False

        # ACT
        await ctx.manager.set_plugin_config("homebridge", {
            "enabled": True,
            "settings": {
                "server_url": "http://homebridge.test:8581",
                "username": "admin",
                "password": "secret",
            },
        })
        devices = await ctx.manager.discover_devices("homebridge")
        result = await ctx.manager.execute_action(
            make_action("homebridge", "fan-1", device_type="fan", new_state=True, speed_level=30)
        )

        # ASSERT
        assert {d.id for d in devices} == {"light-1", "fan-1", "outlet-1"}
        assert result.success is True
        assert homebridge_server.updates == [{"characteristicType": "RotationSpeed", "value": 30}]
        assert homebridge_server.login_count == 1

        await close_hub_context(ctx)
