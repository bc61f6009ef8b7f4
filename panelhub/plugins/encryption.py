"""
Plugin Settings Encryption

Encrypts sensitive plugin settings (passwords, API keys) before the config
store writes plugins.json, and decrypts them after loading.
Uses Fernet symmetric encryption (cryptography library).

Security Design:
- Encryption key stored in environment variable (HUB_ENCRYPTION_KEY)
- Each plugin declares which setting keys are sensitive (PluginBase.sensitive_settings)
- Encryption happens only at the persistence boundary; plugins and the
  manager always see plaintext settings

Usage:
    encryption = SettingsEncryption()
    encryption.register_sensitive_fields("homebridge", {"password"})

    stored = encryption.encrypt_settings("homebridge", {"username": "admin", "password": "s3cret"})
    # {"username": "admin", "password": "__encrypted__:gAAAAABf..."}

    plain = encryption.decrypt_settings("homebridge", stored)
"""

import os
import logging
from typing import Any, Dict, Iterable, Optional, Set

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class SettingsEncryptionError(Exception):
    """Raised when encryption/decryption fails"""
    pass


class SettingsEncryption:
    """
    Handles encryption/decryption of sensitive plugin settings.

    Only declared fields are encrypted; other settings remain plaintext
    for debugging and external inspection of plugins.json.
    """

    # Marker to identify encrypted values (prevents double encryption)
    ENCRYPTED_MARKER = '__encrypted__:'

    def __init__(self, key: Optional[str] = None):
        """
        Args:
            key: Fernet key. Defaults to the HUB_ENCRYPTION_KEY env var.
        """
        self._key = key if key is not None else os.getenv('HUB_ENCRYPTION_KEY')
        self._fernet: Optional[Fernet] = None
        self.sensitive_fields: Dict[str, Set[str]] = {}

    def _get_fernet(self) -> Fernet:
        """
        Get or create the Fernet cipher.

        Raises:
            SettingsEncryptionError: If the key is not configured or invalid
        """
        if self._fernet is not None:
            return self._fernet

        if not self._key:
            raise SettingsEncryptionError(
                "HUB_ENCRYPTION_KEY environment variable not set. "
                "Generate a key with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
            )

        try:
            self._fernet = Fernet(self._key.encode())
            return self._fernet
        except Exception as e:
            raise SettingsEncryptionError(f"Invalid HUB_ENCRYPTION_KEY: {e}")

    @property
    def enabled(self) -> bool:
        return bool(self._key)

    def register_sensitive_fields(self, plugin_id: str, fields: Iterable[str]) -> None:
        """Declare which setting keys of a plugin must be encrypted at rest"""
        fields = set(fields)
        if not fields:
            return
        self.sensitive_fields.setdefault(plugin_id, set()).update(fields)
        logger.debug(f"🔒 Registered sensitive settings for plugin '{plugin_id}': {sorted(fields)}")

    def encrypt_settings(self, plugin_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Encrypt sensitive fields of a plugin's settings.

        Returns a copy; plaintext is returned unchanged when no key is configured.

        Raises:
            SettingsEncryptionError: If encrypting a field fails
        """
        fields = self.sensitive_fields.get(plugin_id, set())
        if not fields:
            return dict(settings)

        try:
            fernet = self._get_fernet()
        except SettingsEncryptionError as e:
            logger.warning(f"⚠️ Settings encryption disabled: {e}")
            return dict(settings)

        encrypted = dict(settings)
        for field in fields:
            value = encrypted.get(field)

            if not value:
                continue
            if isinstance(value, str) and value.startswith(self.ENCRYPTED_MARKER):
                continue

            try:
                token = fernet.encrypt(str(value).encode())
                encrypted[field] = f"{self.ENCRYPTED_MARKER}{token.decode()}"
            except Exception as e:
                raise SettingsEncryptionError(f"Encryption failed for field '{field}': {e}")

        return encrypted

    def decrypt_settings(self, plugin_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Decrypt sensitive fields of a plugin's settings.

        Raises:
            SettingsEncryptionError: If a field is encrypted but cannot be decrypted
        """
        fields = self.sensitive_fields.get(plugin_id, set())
        if not fields:
            return dict(settings)

        decrypted = dict(settings)
        for field in fields:
            value = decrypted.get(field)
            if not self.is_encrypted(value):
                continue

            fernet = self._get_fernet()
            try:
                plain = fernet.decrypt(value[len(self.ENCRYPTED_MARKER):].encode())
                decrypted[field] = plain.decode()
            except InvalidToken:
                raise SettingsEncryptionError(
                    f"Decryption failed for field '{field}': Invalid token (wrong encryption key?)"
                )

        return decrypted

    @classmethod
    def is_encrypted(cls, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(cls.ENCRYPTED_MARKER)

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key"""
        return Fernet.generate_key().decode()
