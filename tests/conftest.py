"""
Pytest configuration and shared fixtures for PanelHub tests
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from panelhub.config.hub import HubSettings, reset_hub_settings
from panelhub.plugins.encryption import SettingsEncryption
from panelhub.plugins.homebridge import HomebridgePlugin
from panelhub.plugins.types import ActionContext, ButtonBinding, PluginConfig
from panelhub.services.config_store import PluginConfigStore
from panelhub.services.plugin_manager import PluginManager
from tests.mocks.mock_homebridge_server import MockHomebridgeServer
from tests.mocks.mock_plugins import RecordingPlugin, BarePlugin


# ============================================================
# Environment Configuration
# ============================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep host environment variables out of the tests"""
    for var in (
        "HUB_ENCRYPTION_KEY",
        "PANELHUB_DATA_DIR",
        "PANELHUB_PLUGINS_FILE",
        "PANELHUB_HTTP_TIMEOUT",
        "PANELHUB_TOKEN_REFRESH_BUFFER",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_hub_settings()
    yield
    reset_hub_settings()


# ============================================================
# Homebridge Fixtures
# ============================================================

@pytest.fixture
def homebridge_server():
    """Fake Homebridge API (see tests/mocks/mock_homebridge_server.py)"""
    return MockHomebridgeServer()


@pytest.fixture
def homebridge_config():
    """Valid Homebridge plugin configuration"""
    return PluginConfig(
        id="homebridge",
        name="Homebridge",
        enabled=True,
        settings={
            "server_url": "http://homebridge.test:8581/",
            "username": "admin",
            "password": "secret",
        },
    )


@pytest.fixture
def homebridge_plugin(homebridge_server):
    """Uninitialized HomebridgePlugin wired to the fake server"""
    return HomebridgePlugin(transport=homebridge_server.transport)


@pytest.fixture
async def initialized_homebridge(homebridge_plugin, homebridge_config):
    """HomebridgePlugin after initialize(); shut down after the test"""
    await homebridge_plugin.initialize(homebridge_config)
    yield homebridge_plugin
    await homebridge_plugin.shutdown()


# ============================================================
# Manager Fixtures
# ============================================================

@pytest.fixture
def plugins_path(tmp_path):
    return tmp_path / "data" / "plugins.json"


@pytest.fixture
def config_store(plugins_path):
    """Config store without encryption key"""
    return PluginConfigStore(plugins_path, encryption=SettingsEncryption(key=""))


@pytest.fixture
def hub_settings(tmp_path):
    return HubSettings(data_dir=str(tmp_path / "data"), http_timeout=2.0)


@pytest.fixture
def manager(config_store):
    return PluginManager(store=config_store)


@pytest.fixture
def recording_plugin():
    return RecordingPlugin()


@pytest.fixture
def bare_plugin():
    return BarePlugin()


# ============================================================
# Action Fixtures
# ============================================================

@pytest.fixture
def make_action():
    """
    Build an ActionContext

    Usage:
        ctx = make_action("homebridge", "fan-1", device_type="fan", new_state=True, speed_level=42)
    """
    def _make(plugin_id, external_device_id="dev-1", device_type="switch", new_state=True, speed_level=None):
        return ActionContext(
            binding=ButtonBinding(
                plugin_id=plugin_id,
                external_device_id=external_device_id,
                device_type=device_type,
                metadata={},
            ),
            new_state=new_state,
            speed_level=speed_level,
            device_id="panel-1",
            button_id=1,
        )
    return _make
