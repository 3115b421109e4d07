"""Unit tests for attendance router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from peerloom.api.v1.dependency import User, get_attendance_service, get_current_user, get_live_session_service
from peerloom.api.v1.errors import app_error_handler
from peerloom.api.v1.routers.attendance import router
from peerloom.domain.live.presence.attendance_service import AttendanceService
from peerloom.domain.live.session.live_session_domain import LiveSessionService
from peerloom.domain.live.session.session_models import HostStatus
from peerloom.utils.app_errors import AppError

GROUP = "group_1"


@pytest.fixture
def mock_user() -> User:
    return User(user_id="host_1", user_name="Hana")


@pytest.fixture
def attendance() -> AttendanceService:
    return AttendanceService(clock=lambda: datetime(2026, 3, 2, 14, 5, 9, tzinfo=timezone.utc))


@pytest.fixture
def mock_live_session_service() -> AsyncMock:
    service = AsyncMock(spec=LiveSessionService)
    service.host_status.return_value = HostStatus(
        group_id=GROUP, host_active=True, host_id="host_1", host_name="Hana"
    )
    return service


@pytest.fixture
def client(mock_user: User, attendance: AttendanceService, mock_live_session_service: AsyncMock) -> TestClient:
    app = FastAPI()
    app.dependency_overrides[get_current_user] = lambda: mock_user
    app.dependency_overrides[get_attendance_service] = lambda: attendance
    app.dependency_overrides[get_live_session_service] = lambda: mock_live_session_service
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return TestClient(app)


class TestRecordAttendance:
    """Tests for POST /attendance/record."""

    def test_first_publish_counts_once(self, client: TestClient):
        # Act
        first = client.post("/attendance/record", json={"group_id": GROUP, "user_id": "u1", "user_name": "Ann"})
        again = client.post("/attendance/record", json={"group_id": GROUP, "user_id": "u1", "user_name": "Ann"})

        # Assert
        assert first.json()["results"] == {"created": True, "participant_count": 2}
        assert again.json()["results"] == {"created": False, "participant_count": 2}

    def test_host_is_not_recorded(self, client: TestClient, attendance: AttendanceService):
        response = client.post("/attendance/record", json={"group_id": GROUP, "user_id": "host_1"})

        assert response.json()["results"]["created"] is False
        assert attendance.entries(GROUP) == []

    def test_only_live_host(self, client: TestClient, mock_live_session_service: AsyncMock):
        mock_live_session_service.host_status.return_value = HostStatus(
            group_id=GROUP, host_active=True, host_id="someone_else"
        )

        response = client.post("/attendance/record", json={"group_id": GROUP, "user_id": "u1"})

        assert response.status_code == 403
        assert response.json()["errcode"] == "E_NOT_HOST"


class TestListAndExport:
    """Tests for GET /attendance/list and /attendance/export."""

    def test_list(self, client: TestClient, attendance: AttendanceService):
        attendance.record(GROUP, "u1", "Ann")

        response = client.get("/attendance/list", params={"group_id": GROUP})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["entries"] == [
            {"user_id": "u1", "display_name": "Ann", "join_time": "02:05:09 PM", "join_date": "03/02/2026"}
        ]

    def test_export_csv(self, client: TestClient, attendance: AttendanceService):
        attendance.record(GROUP, "u1", "Ann")

        response = client.get("/attendance/export", params={"group_id": GROUP})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="attendance-2026-03-02.csv"'
        lines = response.text.splitlines()
        assert lines[1] == "Hana,Host,02:05:09 PM,03/02/2026,Present"
        assert lines[2] == "Ann,Student,02:05:09 PM,03/02/2026,Present"

    def test_no_live_session(self, client: TestClient, mock_live_session_service: AsyncMock):
        mock_live_session_service.host_status.return_value = HostStatus(group_id=GROUP, host_active=False)

        response = client.get("/attendance/export", params={"group_id": GROUP})

        assert response.status_code == 403
