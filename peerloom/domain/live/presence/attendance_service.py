"""Per-group attendance kept by the service process."""

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from .attendance import AttendanceEntry, AttendanceTracker, export_csv, export_filename, local_now


class AttendanceService:
    """One `AttendanceTracker` per group, fed by webhooks and client reports."""

    def __init__(self, clock: Callable[[], datetime] = local_now):
        self._clock = clock
        self._trackers: dict[str, AttendanceTracker] = {}

    def tracker(self, group_id: str) -> AttendanceTracker:
        tracker = self._trackers.get(group_id)
        if tracker is None:
            tracker = self._trackers[group_id] = AttendanceTracker(clock=self._clock)
        return tracker

    def record(
        self,
        group_id: str,
        user_id: str,
        user_name: str | None = None,
        *,
        host_id: str | None = None,
    ) -> bool:
        """Record a first publish. The host is never an attendance entry."""
        if host_id is not None and user_id == host_id:
            return False
        created = self.tracker(group_id).record(user_id, user_name)
        if created:
            logger.info("Attendance: user {} present in group {}", user_id, group_id)
        return created

    def entries(self, group_id: str) -> list[AttendanceEntry]:
        return self.tracker(group_id).entries()

    def participant_count(self, group_id: str) -> int:
        return self.tracker(group_id).participant_count

    def export(self, group_id: str, host_name: str | None, exported_at: datetime | None = None) -> tuple[str, str]:
        """Returns (filename, csv_text)."""
        exported_at = exported_at or self._clock()
        return export_filename(exported_at), export_csv(self.entries(group_id), host_name, exported_at)

    def reset(self, group_id: str) -> None:
        """Start a fresh attendance list for a new session of the group."""
        if self._trackers.pop(group_id, None) is not None:
            logger.info("Attendance reset for group {}", group_id)
