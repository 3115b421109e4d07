"""
Centralized configuration management.

Configuration is loaded from, in increasing priority:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        """
        Load configuration from env files and system environment.

        Priority order (later overrides earlier):
        1. env.example
        2. env.local
        3. System environment variables
        """
        root = Path(__file__).parent.parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            self._config.update(dotenv_values(example_path))
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            self._config.update(dotenv_values(local_path))
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        """Get configuration value by key with optional default."""
        return self._config.get(key, default)

    def reload(self):
        """
        Reload configuration from files and environment.
        Useful for testing or when configuration files change.
        """
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def values(self):
        return self._config.values()

    def items(self):
        return self._config.items()

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None or str(value).strip() == "":
            return default
        return str(value).strip().lower() in {"true", "1", "yes", "on"}

    def get_redis_url(self, label: str = "default") -> str:
        """
        Get Redis connection URL for a specific label.

        `default` resolves REDIS_URL_DEFAULT, then REDIS_URL, then localhost.
        Other labels resolve REDIS_URL_<LABEL>.
        """
        if label == "default":
            return self.get("REDIS_URL_DEFAULT") or self.get("REDIS_URL") or "redis://localhost:6379"

        return self.get(f"REDIS_URL_{label.upper()}") or ""

    def get_mongo_url(self, label: str = "default") -> str:
        """
        Get MongoDB connection URL for a specific label.

        `default` resolves MONGO_URL_DEFAULT, then MONGO_URL, then localhost.
        Other labels resolve MONGO_URL_<LABEL>.
        """
        if label == "default":
            return self.get("MONGO_URL_DEFAULT") or self.get("MONGO_URL") or "mongodb://localhost:27017"

        return self.get(f"MONGO_URL_{label.upper()}") or ""

    def _get_positive_int(self, key: str, default: int, upper: int | None = None) -> int:
        raw = self.get(key, str(default))
        try:
            value = int(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default

        if value <= 0 or (upper is not None and value > upper):
            logger.warning("{} value {} is out of range, defaulting to {}", key, value, default)
            return default

        return value

    def get_mongo_max_pool_size(self) -> int:
        """MongoDB maximum pool size (1-100, default: 5)."""
        return self._get_positive_int("MONGO_MAX_POOL_SIZE", 5, upper=100)

    def get_mongo_server_selection_timeout(self) -> int:
        """MongoDB server selection timeout in milliseconds (default: 30000)."""
        return self._get_positive_int("MONGO_SERVER_SELECTION_TIMEOUT", 30000)

    def get_mongo_connect_timeout(self) -> int:
        """MongoDB connection timeout in milliseconds (default: 30000)."""
        return self._get_positive_int("MONGO_CONNECT_TIMEOUT", 30000)

    def get_mongo_socket_timeout(self) -> int:
        """MongoDB socket timeout in milliseconds (default: 300000)."""
        return self._get_positive_int("MONGO_SOCKET_TIMEOUT", 300000)

    def get_redis_major_label(self) -> str:
        return (self.get("REDIS_MAJOR_LABEL") or "peerloom_major").strip()

    def get_mongo_label(self) -> str:
        return (self.get("MONGO_LABEL") or "peerloom_primary").strip()


config = EnvironConfig()
