from pydantic import BaseModel, Field


class RecordAttendanceIn(BaseModel):
    group_id: str
    user_id: str = Field(description="Participant whose first publish was observed")
    user_name: str | None = None


class RecordAttendanceOut(BaseModel):
    created: bool
    participant_count: int


class AttendanceEntryOut(BaseModel):
    user_id: str
    display_name: str
    join_time: str
    join_date: str


class ListAttendanceOut(BaseModel):
    entries: list[AttendanceEntryOut]
    participant_count: int
