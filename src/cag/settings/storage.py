"""
Settings storage management for cag.

This module provides YAML-based configuration file persistence with:
- Configuration path resolution (argument, CAG_CONFIG, ~/.cag/config.yaml)
- Raw mapping load/save with parse errors mapped to ConfigError
- Secure credential storage using the system keyring
"""

import logging
from pathlib import Path
from typing import Any, Mapping

import keyring
import keyring.errors
import yaml

from ..errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CAG_CONFIG"


def default_config_dir() -> Path:
    """Return the default configuration directory (~/.cag)."""
    return Path.home() / ".cag"


def resolve_config_path(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Path:
    """
    Determine which configuration file to use.

    Args:
        config_path: Explicit path (highest precedence)
        env: Environment mapping checked for CAG_CONFIG

    Returns:
        Path to the configuration file (it may not exist)
    """
    if config_path:
        return Path(config_path).expanduser()
    env_path = (env or {}).get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return default_config_dir() / "config.yaml"


class SettingsStorage:
    """
    Settings storage manager.

    Handles loading and saving the raw configuration mapping to a YAML file
    and credential storage in the system keyring.

    Attributes:
        config_file: Path to the configuration file.
    """

    KEYRING_SERVICE = "cag"

    def __init__(self, config_file: Path | None = None) -> None:
        """
        Initialize the settings storage.

        Args:
            config_file: Optional path to the configuration file.
                         Defaults to ~/.cag/config.yaml
        """
        self.config_file = config_file or default_config_dir() / "config.yaml"

    def exists(self) -> bool:
        return self.config_file.is_file()

    def load_raw(self) -> dict[str, Any]:
        """
        Load the raw configuration mapping.

        Returns:
            Mapping loaded from the file, or an empty dict if the file
            does not exist or is empty.

        Raises:
            ConfigError: If the file cannot be read or parsed, or its top
                level is not a mapping.
        """
        if not self.exists():
            logger.debug(f"No configuration file at {self.config_file}")
            return {}

        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Cannot parse configuration file {self.config_file}: {e}",
                resource=str(self.config_file),
            ) from e
        except OSError as e:
            raise ConfigError(
                f"Cannot read configuration file {self.config_file}: {e}",
                resource=str(self.config_file),
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"Configuration file {self.config_file} must contain a mapping, "
                f"got {type(data).__name__}",
                resource=str(self.config_file),
            )

        logger.debug(f"Loaded configuration from {self.config_file}")
        return data

    # ========================================================================
    # Credential Management (using keyring for secure storage)
    # ========================================================================

    def get_credential(self, name: str) -> str | None:
        """
        Get a credential from the system keyring.

        Uses the system's secure credential storage (Keychain on macOS,
        Credential Manager on Windows, Secret Service on Linux).

        Args:
            name: Keyring username (usually the backend name).

        Returns:
            The credential if found, or None if not stored or keyring unavailable.
        """
        try:
            return keyring.get_password(self.KEYRING_SERVICE, name)
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring unavailable, cannot retrieve credential '{name}': {e}")
            return None

    def set_credential(self, name: str, secret: str) -> None:
        """
        Store a credential in the system keyring.

        Raises:
            keyring.errors.KeyringError: If keyring is not available.
        """
        try:
            keyring.set_password(self.KEYRING_SERVICE, name, secret)
            logger.debug(f"Credential '{name}' stored successfully")
        except keyring.errors.KeyringError as e:
            logger.error(f"Failed to store credential in keyring: {e}")
            raise

    def delete_credential(self, name: str) -> bool:
        """
        Delete a credential from the system keyring.

        Returns:
            True if a credential was deleted, False if none was stored.
        """
        try:
            keyring.delete_password(self.KEYRING_SERVICE, name)
            logger.debug(f"Credential '{name}' deleted successfully")
            return True
        except keyring.errors.PasswordDeleteError:
            logger.debug(f"No credential found for '{name}' to delete")
            return False
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keyring error while deleting credential: {e}")
            return False

    def has_credential(self, name: str) -> bool:
        """Check if a non-empty credential exists in the keyring."""
        secret = self.get_credential(name)
        return secret is not None and len(secret) > 0
