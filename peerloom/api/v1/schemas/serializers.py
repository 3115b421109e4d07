"""Shared serialization utilities for API schemas."""

from datetime import datetime

from peerloom.shared.domain.timeutils import ensure_utc


def serialize_utc_datetime(dt: datetime) -> str:
    """ISO 8601 with an explicit UTC offset, e.g. 2026-03-02T10:30:00+00:00"""
    return ensure_utc(dt).isoformat()


def serialize_optional_utc_datetime(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return serialize_utc_datetime(dt)
