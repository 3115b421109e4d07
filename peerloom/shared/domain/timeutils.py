import time
from datetime import datetime, timezone

utc_now = lambda: datetime.now(timezone.utc)  # noqa: E731
utc_now_ms = lambda: int(time.time() * 1000)  # noqa: E731
ms_to_dt = lambda ms: datetime.fromtimestamp(int(ms) / 1000, timezone.utc)  # noqa: E731
dt_to_ms = lambda dt: int(dt.timestamp() * 1000)  # noqa: E731


def ensure_utc(dt: datetime) -> datetime:
    """Mongo returns naive datetimes unless tz_aware is set; treat them as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
