"""Fireface application entry point.

An App holds the settings shared by every Fireface client (server URL,
secret, logging) and hands out configured clients.

Settings are read from the environment with the ``FIREFACE_`` prefix (and an
optional ``.env`` file):

- ``FIREFACE_SERVER_URL``            identity service URL
- ``FIREFACE_SECRET_KEY``            project secret
- ``FIREFACE_DEBUG``                 debug logging with call-site info
- ``FIREFACE_MIN_REFRESH_INTERVAL``  key set refresh interval in seconds
- ``FIREFACE_HTTP_TIMEOUT``          HTTP timeout in seconds
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .client import SDK_VERSION, AuthClient, AuthConfig, create_client
from .key_cache import DEFAULT_MIN_REFRESH_INTERVAL
from .log import build_logger

DEFAULT_SERVER_URL = "https://fireface.4armedlabs.run"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FIREFACE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    server_url: str = DEFAULT_SERVER_URL
    secret_key: str = ""
    debug: bool = False
    min_refresh_interval: float = Field(default=DEFAULT_MIN_REFRESH_INTERVAL, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)


class App:
    """Shared Fireface configuration and client factory.

    Example:
        ```python
        app = App()  # settings from FIREFACE_* environment variables
        auth = app.auth()
        token = auth.verify_id_token(raw_id_token)
        ```
    """

    def __init__(self, settings: AppSettings | None = None, *, logger: Any = None) -> None:
        self.settings = settings or AppSettings()
        self.logger = logger or build_logger(debug=self.settings.debug)

    def auth_config(self, **overrides: Any) -> AuthConfig:
        values: dict[str, Any] = {
            "base_url": self.settings.server_url,
            "secret_key": self.settings.secret_key,
            "min_refresh_interval": self.settings.min_refresh_interval,
            "http_timeout": self.settings.http_timeout,
            "logger": self.logger,
            "version": SDK_VERSION,
        }
        values.update(overrides)
        return AuthConfig(**values)

    def auth(self, *, timeout: float | None = None, **overrides: Any) -> AuthClient:
        """Return an AuthClient whose key set is already fetched.

        Raises:
            ConfigError: The secret key or server URL is missing or invalid.
            FetchError, ParseError: The key set could not be fetched.
        """
        http_client = overrides.pop("http_client", None)
        return create_client(
            self.auth_config(**overrides), http_client=http_client, timeout=timeout
        )
