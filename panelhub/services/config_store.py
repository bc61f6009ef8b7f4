"""
Plugin Configuration Store

Persists per-plugin enablement and settings to a single JSON file:

    {
        "configs": {
            "homebridge": {"id": "homebridge", "name": "Homebridge", "enabled": true, "settings": {...}}
        }
    }

Every save rewrites the whole file (temp file + atomic rename). Read and
write failures are logged and never abort the caller; the manager keeps
working from its in-memory state.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import ValidationError

from panelhub.config.logging_config import get_logger
from panelhub.plugins.encryption import SettingsEncryption, SettingsEncryptionError
from panelhub.plugins.types import PersistenceError, PluginConfig

logger = get_logger(__name__)


class PluginConfigStore:
    """
    JSON-file store for PluginConfig records keyed by plugin id.

    Usage:
        store = PluginConfigStore(Path("data/plugins.json"))
        configs = await store.load()
        configs["homebridge"].enabled = True
        await store.save(configs)
    """

    def __init__(self, path: Path, encryption: Optional[SettingsEncryption] = None):
        """
        Args:
            path: Location of plugins.json (parent directory is created on save)
            encryption: Sensitive-settings cipher (default: keyed from HUB_ENCRYPTION_KEY)
        """
        self.path = Path(path)
        self.encryption = encryption or SettingsEncryption()

    def register_sensitive_fields(self, plugin_id: str, fields: Iterable[str]) -> None:
        self.encryption.register_sensitive_fields(plugin_id, fields)

    async def load(self) -> Dict[str, PluginConfig]:
        """
        Load all plugin configs.

        Returns:
            Mapping plugin_id -> PluginConfig (empty if the file is missing or unreadable)
        """
        try:
            return await asyncio.to_thread(self._read)
        except PersistenceError as e:
            logger.error(f"❌ Failed to load plugin configs: {e}")
            return {}

    async def save(self, configs: Dict[str, PluginConfig]) -> bool:
        """
        Write all plugin configs.

        Returns:
            bool: True if the file was written
        """
        try:
            await asyncio.to_thread(self._write, configs)
            return True
        except PersistenceError as e:
            logger.error(f"❌ Failed to save plugin configs: {e}")
            return False

    def _read(self) -> Dict[str, PluginConfig]:
        if not self.path.exists():
            logger.info(f"📋 No plugin config file at {self.path}, starting empty")
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                storage = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

        if not isinstance(storage, dict):
            raise PersistenceError(f"Unexpected content in {self.path}")

        configs: Dict[str, PluginConfig] = {}
        for plugin_id, record in (storage.get("configs") or {}).items():
            try:
                config = PluginConfig.model_validate(record)
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping invalid config record '{plugin_id}': {e}")
                continue

            try:
                config.settings = self.encryption.decrypt_settings(config.id, config.settings)
            except SettingsEncryptionError as e:
                logger.error(f"❌ Could not decrypt settings for plugin '{config.id}': {e}")

            configs[plugin_id] = config

        logger.info(f"📋 Loaded {len(configs)} plugin configurations")
        return configs

    def _write(self, configs: Dict[str, PluginConfig]) -> None:
        try:
            records = {}
            for plugin_id, config in configs.items():
                record = config.model_dump()
                record["settings"] = self.encryption.encrypt_settings(config.id, config.settings)
                records[plugin_id] = record
        except SettingsEncryptionError as e:
            raise PersistenceError(str(e)) from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".plugins-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump({"configs": records}, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

        logger.debug(f"📋 Saved {len(configs)} plugin configurations")
