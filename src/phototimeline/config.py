"""Configuration management for phototimeline.

Settings are read from environment variables once per key and cached. Backends
and stores pull their required settings through this module at construction
time so that a missing value fails fast with a descriptive error.
"""

import os
from typing import Any

from dotenv import dotenv_values

from .error_handling import ConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)


class Config:
    """Centralized configuration management using environment variables."""

    def __init__(self, overrides: dict[str, Any] | None = None):
        """
        Initialize configuration.

        Args:
            overrides: Values that take precedence over the environment
        """
        self._overrides = dict(overrides or {})
        self._cache: dict[str, Any] = {}

    def get(self, key: str, default: Any = None, cast_type: type = str) -> Any:
        """Get configuration value from overrides or environment variables.

        Args:
            key: Configuration key
            default: Default value if not found
            cast_type: Type to cast the value to (str, int, bool, float)

        Returns:
            Configuration value cast to the specified type
        """
        cache_key = f"{key}:{cast_type.__name__}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        value = self._overrides.get(key)
        if value is None:
            value = os.getenv(key)

        # Empty strings in .env files mean "unset"
        if value is None or value == "":
            value = default

        if value is not None:
            try:
                if cast_type is bool:
                    if isinstance(value, str):
                        value = value.lower() in ("true", "1", "yes", "on")
                    else:
                        value = bool(value)
                elif cast_type is not str:
                    value = cast_type(value)
            except (ValueError, TypeError) as e:
                logger.warning("config_cast_failed", key=key, cast_type=cast_type.__name__, error=str(e))
                value = default

        self._cache[cache_key] = value
        return value

    def get_required(self, key: str, cast_type: type = str) -> Any:
        """Get required configuration value.

        Raises:
            ConfigurationError: If the required configuration is not found
        """
        value = self.get(key, cast_type=cast_type)
        if value is None:
            raise ConfigurationError(
                f"Required configuration '{key}' not found",
                details={"key": key},
            )
        return value

    def is_development(self) -> bool:
        """Check if running in development mode."""
        environment = self.get("ENVIRONMENT", "development").lower()
        return environment in ["development", "dev", "local", "test"]

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._cache.clear()

    # Common settings

    @property
    def project_id(self) -> str | None:
        return self.get("GOOGLE_CLOUD_PROJECT")

    @property
    def firebase_storage_bucket(self) -> str | None:
        return self.get("FIREBASE_STORAGE_BUCKET")

    @property
    def gcs_bucket_name(self) -> str | None:
        return self.get("GCS_BUCKET_NAME")

    @property
    def gcs_server_bucket(self) -> str | None:
        return self.get("GCS_SERVER_BUCKET") or self.gcs_bucket_name

    @property
    def credentials_file(self) -> str | None:
        return self.get("GOOGLE_APPLICATION_CREDENTIALS")

    @property
    def firebase_database_url(self) -> str | None:
        return self.get("FIREBASE_DATABASE_URL")

    @property
    def database_path(self) -> str:
        return str(self.get("PHOTOLINE_DB_PATH", ":memory:"))

    @property
    def storage_folder(self) -> str:
        return str(self.get("STORAGE_FOLDER", "photos"))

    @property
    def storage_timeout(self) -> float:
        return float(self.get("STORAGE_TIMEOUT", 60.0, float))

    @property
    def max_file_size(self) -> int:
        return int(self.get("MAX_FILE_SIZE", 50 * 1024 * 1024, int))

    @property
    def thumbnail_max_size(self) -> int:
        return int(self.get("THUMBNAIL_MAX_SIZE", 300, int))

    @property
    def thumbnail_quality(self) -> float:
        return float(self.get("THUMBNAIL_QUALITY", 0.8, float))


def load_config(overrides: dict[str, Any] | None = None, env_file: str | None = None) -> Config:
    """
    Build a configuration snapshot for one application instance.

    Args:
        overrides: Values that take precedence over everything else
        env_file: Optional .env file whose values take precedence over the environment
    """
    values: dict[str, Any] = {}
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigurationError(
                f"Environment file not found: {env_file}",
                code="env_file_not_found",
                details={"env_file": env_file},
            )
        values.update({key: value for key, value in dotenv_values(env_file).items() if value is not None})
        logger.info("env_file_loaded", env_file=env_file, keys=len(values))
    values.update(overrides or {})
    return Config(values)
