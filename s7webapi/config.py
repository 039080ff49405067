"""Configuration management for the S7 Webserver API client."""

import json
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import WebserverConfigError

DEFAULT_TIMEOUT = 30.0


class Config:
    """Connection settings resolved from the environment and a config file.

    Environment variables take precedence over the config file stored in
    ``~/.config/s7webapi/config.json``.
    """

    ENV_HOST = "S7WEBAPI_HOST"
    ENV_USER = "S7WEBAPI_USER"
    ENV_PASSWORD = "S7WEBAPI_PASSWORD"
    ENV_VERIFY_SSL = "S7WEBAPI_VERIFY_SSL"
    ENV_TIMEOUT = "S7WEBAPI_TIMEOUT"

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config.json (default: ~/.config/s7webapi)
        """
        self.config_dir = config_dir or Path.home() / ".config" / "s7webapi"
        self.config_file = self.config_dir / "config.json"

    def _load_file(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise WebserverConfigError(
                f"Cannot read config file {self.config_file}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise WebserverConfigError(
                f"Config file {self.config_file} must contain a JSON object"
            )
        return data

    def _get(self, env_name: str, key: str) -> Optional[str]:
        value = os.environ.get(env_name)
        if value:
            return value
        stored = self._load_file().get(key)
        return str(stored) if stored is not None else None

    @property
    def host(self) -> Optional[str]:
        """Device address, e.g. ``192.168.0.1`` or ``https://plc.local``."""
        return self._get(self.ENV_HOST, "host")

    @property
    def user(self) -> Optional[str]:
        return self._get(self.ENV_USER, "user")

    @property
    def password(self) -> Optional[str]:
        return self._get(self.ENV_PASSWORD, "password")

    @property
    def verify_ssl(self) -> bool:
        """Whether to verify the device certificate (default: True)."""
        value = self._get(self.ENV_VERIFY_SSL, "verify_ssl")
        if value is None:
            return True
        return value.strip().lower() not in ("0", "false", "no", "off")

    @property
    def timeout(self) -> float:
        value = self._get(self.ENV_TIMEOUT, "timeout")
        if value is None:
            return DEFAULT_TIMEOUT
        try:
            return float(value)
        except ValueError as e:
            raise WebserverConfigError(f"Invalid timeout value: {value}") from e

    def save(
        self,
        host: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        verify_ssl: Optional[bool] = None,
    ) -> None:
        """Store connection settings in the config file.

        Args:
            host: Device address
            user: Optional user name
            password: Optional password (stored in clear text)
            verify_ssl: Optional certificate verification flag
        """
        data = self._load_file()
        data["host"] = host
        if user is not None:
            data["user"] = user
        if password is not None:
            data["password"] = password
        if verify_ssl is not None:
            data["verify_ssl"] = verify_ssl

        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        # Password may be stored in the file
        self.config_file.chmod(0o600)

    def get_config_path(self) -> Path:
        return self.config_file

    def is_configured(self) -> bool:
        """Check whether a device address is available."""
        return bool(self.host)


config = Config()
