"""Attendance: who was ever present in a live session."""

import csv
import io
from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel

CSV_HEADER = ["Name", "Role", "Join Time", "Join Date", "Status"]

TIME_FORMAT = "%I:%M:%S %p"
DATE_FORMAT = "%m/%d/%Y"


def local_now() -> datetime:
    return datetime.now().astimezone()


class AttendanceEntry(BaseModel):
    user_id: str
    user_name: str | None = None
    joined_at: datetime

    @property
    def display_name(self) -> str:
        return self.user_name or f"User {self.user_id[:8]}"

    @property
    def join_time(self) -> str:
        return self.joined_at.strftime(TIME_FORMAT)

    @property
    def join_date(self) -> str:
        return self.joined_at.strftime(DATE_FORMAT)


class AttendanceTracker:
    """
    First-publish attendance for one session.

    An entry is created the first time a user's media is observed and is never
    removed or duplicated, so leaving and rejoining keeps the first join time.
    """

    def __init__(self, clock: Callable[[], datetime] = local_now):
        self._clock = clock
        self._entries: dict[str, AttendanceEntry] = {}

    def record(self, user_id: str, user_name: str | None = None) -> bool:
        """Returns True if a new entry was created."""
        existing = self._entries.get(user_id)
        if existing is not None:
            if user_name and not existing.user_name:
                existing.user_name = user_name
            return False

        self._entries[user_id] = AttendanceEntry(user_id=user_id, user_name=user_name, joined_at=self._clock())
        logger.debug("attendance: {} ({}) present", user_id, user_name)
        return True

    def entries(self) -> list[AttendanceEntry]:
        """Entries in join order."""
        return list(self._entries.values())

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def participant_count(self) -> int:
        """Students present plus the host."""
        return len(self._entries) + 1


def export_csv(entries: list[AttendanceEntry], host_name: str | None, exported_at: datetime) -> str:
    """Attendance as CSV text: header, the host row stamped at export time, then one row per student."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    writer.writerow(
        [host_name or "Host", "Host", exported_at.strftime(TIME_FORMAT), exported_at.strftime(DATE_FORMAT), "Present"]
    )
    for entry in entries:
        writer.writerow([entry.display_name, "Student", entry.join_time, entry.join_date, "Present"])
    return buffer.getvalue().rstrip("\n")


def export_filename(exported_at: datetime) -> str:
    """Named after the UTC date of the export. Naive datetimes are taken as local time."""
    return f"attendance-{exported_at.astimezone(timezone.utc).date().isoformat()}.csv"
