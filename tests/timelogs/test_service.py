"""Tests for time-log persistence and endpoints."""

from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session
from cassandra.util import Date
from fastapi.testclient import TestClient

from trilha.main import app
from trilha.timelogs.models import TimeLog, TimeLogEntityType
from trilha.timelogs.schemas import TimeLogCreate
from trilha.timelogs.service import TimeLogService


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def time_log_service(mock_session):
    """Create TimeLogService instance with mocked session."""
    return TimeLogService(session=mock_session, keyspace="test_keyspace")


def _row(minutes: int, **overrides) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "user_id": uuid4(),
        "entity_id": uuid4(),
        "entity_type": "course",
        "entity_title": "Farmacologia • Aula 1",
        "log_date": Date(date(2026, 3, 14)),
        "duration_minutes": minutes,
        "description": None,
        "created_at": datetime(2026, 3, 14, 10, 0),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestTimeLogService:
    """Tests for TimeLogService."""

    @pytest.mark.asyncio
    async def test_append(self, time_log_service, mock_session):
        entry = TimeLogCreate(
            user_id=uuid4(),
            entity_id=uuid4(),
            entity_title="Farmacologia • Aula 1",
            log_date=date(2026, 3, 14),
            duration_minutes=45,
            description="Tempo dedicado a Aula 1",
        )

        time_log = await time_log_service.append(entry)

        assert time_log.entity_type == TimeLogEntityType.COURSE.value
        assert time_log.duration_minutes == 45
        params = mock_session.aexecute.call_args.args[1]
        assert params[:2] == [entry.user_id, entry.entity_id]
        assert params[6:8] == [date(2026, 3, 14), 45]

    def test_rejects_non_positive_minutes(self):
        with pytest.raises(ValueError):
            TimeLogCreate(
                user_id=uuid4(),
                entity_id=uuid4(),
                entity_title="Farmacologia",
                log_date=date(2026, 3, 14),
                duration_minutes=0,
            )

    @pytest.mark.asyncio
    async def test_list_and_total(self, time_log_service, mock_session):
        mock_session.aexecute.return_value = [_row(45), _row(30)]

        logs = await time_log_service.list_entity_logs(uuid4(), uuid4())
        total = await time_log_service.total_minutes(uuid4(), uuid4())

        assert [log.log_date for log in logs] == [date(2026, 3, 14)] * 2
        assert logs[0].description == ""
        assert total == 75


class TestTimeLogRouter:
    """Tests for /v1/time-logs."""

    @pytest.fixture
    def wired_service(self):
        service = Mock()
        service.append = AsyncMock()
        service.list_entity_logs = AsyncMock(return_value=[])
        app.state.time_log_service = service
        yield service
        app.state.time_log_service = None

    def test_create(self, client: TestClient, wired_service):
        user_id, course_id = uuid4(), uuid4()
        wired_service.append.return_value = TimeLog(
            user_id=user_id,
            entity_id=course_id,
            entity_type="course",
            entity_title="Farmacologia",
            log_date=date(2026, 3, 14),
            duration_minutes=15,
        )

        response = client.post(
            "/v1/time-logs",
            json={
                "user_id": str(user_id),
                "entity_id": str(course_id),
                "entity_title": "Farmacologia",
                "log_date": "2026-03-14",
                "duration_minutes": 15,
            },
        )

        assert response.status_code == 201
        assert response.json()["duration_minutes"] == 15

    def test_list_with_formatted_total(self, client: TestClient, wired_service):
        wired_service.list_entity_logs.return_value = [
            TimeLog.from_row(_row(45)),
            TimeLog.from_row(_row(30)),
        ]

        response = client.get(f"/v1/time-logs/courses/{uuid4()}/users/{uuid4()}")

        assert response.status_code == 200
        data = response.json()
        assert len(data["items"]) == 2
        assert data["total_minutes"] == 75
        assert data["total_formatted"] == "1h 15m"

    def test_service_unavailable(self, client: TestClient):
        response = client.get(f"/v1/time-logs/courses/{uuid4()}/users/{uuid4()}")

        assert response.status_code == 503
