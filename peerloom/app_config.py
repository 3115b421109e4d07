from pydantic import BaseModel

from peerloom.shared.config import config


def _float(key: str, default: float) -> float:
    return float((config.get(key) or "").strip() or default)


def _int(key: str, default: int) -> int:
    return int((config.get(key) or "").strip() or default)


class AppEnvironConfig(BaseModel):
    # Public demo switch: when enabled, external integrations use stubs and avoid network calls.
    DEMO_MODE: bool = config.get_bool("DEMO_MODE", True)

    API_CORS_ORIGINS: list[str] = [
        x.strip() for x in (config.get("API_CORS_ORIGINS") or "*").split(",") if x.strip()
    ]

    # Hosted auth provider (HS256 JWT)
    AUTH_JWT_SECRET: str | None = (config.get("AUTH_JWT_SECRET") or "").strip() or None
    AUTH_JWT_AUDIENCE: str | None = (config.get("AUTH_JWT_AUDIENCE") or "authenticated").strip() or None

    # LiveKit configuration
    LIVEKIT_URL: str | None = (config.get("LIVEKIT_URL") or "").strip() or None
    LIVEKIT_API_KEY: str | None = (config.get("LIVEKIT_API_KEY") or "").strip() or None
    LIVEKIT_API_SECRET: str | None = (config.get("LIVEKIT_API_SECRET") or "").strip() or None
    RTC_TOKEN_TTL_SECONDS: int = _int("RTC_TOKEN_TTL_SECONDS", 3600)

    # Admission
    # When False, a student arriving while the host is live must request to join manually.
    AUTO_ADMIT_WHEN_HOST_ACTIVE: bool = config.get_bool("AUTO_ADMIT_WHEN_HOST_ACTIVE", True)
    HOST_MARKER_STALE_SECONDS: int = _int("HOST_MARKER_STALE_SECONDS", 3 * 60 * 60)
    REGISTRY_READ_RETRIES: int = _int("REGISTRY_READ_RETRIES", 3)
    CONNECT_READ_BACKOFF_SECONDS: float = _float("CONNECT_READ_BACKOFF_SECONDS", 0.5)
    ADMISSION_READ_BACKOFF_SECONDS: float = _float("ADMISSION_READ_BACKOFF_SECONDS", 0.3)
    HOST_POLL_INTERVAL_SECONDS: float = _float("HOST_POLL_INTERVAL_SECONDS", 2.0)
    REQUEST_POLL_INTERVAL_SECONDS: float = _float("REQUEST_POLL_INTERVAL_SECONDS", 3.0)
    WAITING_ROOM_POLL_INTERVAL_SECONDS: float = _float("WAITING_ROOM_POLL_INTERVAL_SECONDS", 5.0)
    AUTO_JOIN_DELAY_SECONDS: float = _float("AUTO_JOIN_DELAY_SECONDS", 1.0)
    WELCOME_DELAY_SECONDS: float = _float("WELCOME_DELAY_SECONDS", 3.5)
    IMMEDIATE_ENTRY_DELAY_SECONDS: float = _float("IMMEDIATE_ENTRY_DELAY_SECONDS", 2.0)
    LEAVE_REDIRECT_DELAY_SECONDS: float = _float("LEAVE_REDIRECT_DELAY_SECONDS", 2.0)

    # Live control channel
    CONTROL_CHANNEL_PREFIX: str = (config.get("CONTROL_CHANNEL_PREFIX") or "peerloom:live").strip()
    REGISTRY_FEED_PREFIX: str = (config.get("REGISTRY_FEED_PREFIX") or "peerloom:registry").strip()
    WHITEBOARD_FLUSH_INTERVAL_SECONDS: float = _float("WHITEBOARD_FLUSH_INTERVAL_SECONDS", 0.1)


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
