"""
Redis client manager that creates and tracks clients per label.
"""

import threading

from loguru import logger
from redis.asyncio import Redis

from ..config import config
from .mongo import hide_password


class RedisManager:
    """
    Redis client manager.

    Features:
    - Creates and tracks Redis clients keyed by label (REDIS_URL_<LABEL>)
    - Supports standalone and cluster modes (`?mode=cluster` or a cluster host)
    - Thread-safe singleton
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return

        self._cache_clients: dict[str, Redis] = {}
        self._connection_strings: dict[str, str] = {}
        self._connection_modes: dict[str, str] = {}
        self._lock = threading.Lock()

        self._load_connection_strings()

        self._initialized = True

    @staticmethod
    def _get_label_from_env_var(env_var: str) -> str | None:
        if env_var.startswith("REDIS_URL_"):
            return env_var[10:].lower()
        return None

    @staticmethod
    def _extract_mode_from_url(connection_string: str) -> str:
        _, _, query = connection_string.partition("?")
        for param in query.split("&"):
            if param.startswith("mode="):
                mode = param.split("=", 1)[1]
                if mode in ("cluster", "standalone"):
                    return mode

        return "cluster" if "cluster" in connection_string else "standalone"

    @staticmethod
    def _clean_connection_string(connection_string: str) -> str:
        base_url, sep, query = connection_string.partition("?")
        if not sep:
            return connection_string

        params = [p for p in query.split("&") if p and not p.startswith("mode=")]
        return f"{base_url}?{'&'.join(params)}" if params else base_url

    def _register(self, label: str, value: str):
        self._connection_strings[label] = value
        mode = self._extract_mode_from_url(value)
        self._connection_modes[label] = mode
        logger.info("Loaded Redis connection string for label '{}' (mode: {}): {}", label, mode, hide_password(value))

    def _load_connection_strings(self):
        for key, value in config.items():
            label = self._get_label_from_env_var(key)
            if label is None or not value:
                continue
            self._register(label, value)

        if "default" not in self._connection_strings:
            self._register("default", config.get_redis_url("default"))

    def get_cache_client(self, label: str | None = None) -> Redis:
        """
        Get Redis client by label, falling back to `default` for unknown labels.
        """
        if label is None or label not in self._connection_strings:
            if label is not None:
                logger.debug("No Redis connection string for label '{}', using default", label)
            label = "default"

        with self._lock:
            if label not in self._cache_clients:
                clean_url = self._clean_connection_string(self._connection_strings[label])
                mode = self._connection_modes.get(label, "standalone")

                logger.info("Open Redis client for label '{}' (mode: {})", label, mode)

                if mode == "cluster":
                    from redis.asyncio.cluster import RedisCluster

                    self._cache_clients[label] = RedisCluster.from_url(clean_url)
                else:
                    self._cache_clients[label] = Redis.from_url(clean_url)

            return self._cache_clients[label]

    async def close_cache_client(self, label: str):
        with self._lock:
            client = self._cache_clients.pop(label, None)

        if client is None:
            return

        try:
            await client.aclose()
            logger.info("Closed Redis client for label '{}'", label)
        except Exception as e:
            logger.error("Error closing Redis client for label '{}': {}", label, e)

    async def close_all(self):
        with self._lock:
            labels = list(self._cache_clients.keys())

        for label in labels:
            await self.close_cache_client(label)


def get_redis_manager() -> RedisManager:
    """Get global RedisManager instance."""
    return RedisManager()


def get_redis_client(label: str | None = None) -> Redis:
    return get_redis_manager().get_cache_client(label)
