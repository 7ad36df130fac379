"""Tests for data models."""

import pytest

from fxp_dashboard.data.models import (
    ConnectionState,
    ConnectionStatus,
    Job,
    JobDomain,
    JobStatus,
    NotificationView,
    ResourceUsage,
    SystemStatusSnapshot,
)


class TestJobStatus:
    def test_terminal(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.QUEUED.is_terminal
        assert not JobStatus.RUNNING.is_terminal


class TestJob:
    def test_to_dict(self):
        job = Job(job_id="extract_1h_1", domain=JobDomain.EXTRACTION, status=JobStatus.RUNNING, progress=40.0)
        data = job.to_dict()

        assert data["job_id"] == "extract_1h_1"
        assert data["domain"] == "extraction"
        assert data["status"] == "running"
        assert data["progress"] == 40.0
        assert data["parameters"] == {}

    def test_frozen(self):
        job = Job(job_id="a", domain=JobDomain.ANALYSIS)
        with pytest.raises(AttributeError):
            job.progress = 50.0


class TestResourceUsage:
    def test_string_sizes(self):
        usage = ResourceUsage.from_dict({"total": "16.0 GB", "used": "4096 MB", "available": "12 GB", "percent": "25.0%"})

        assert usage.total_gb == 16.0
        assert usage.used_gb == 4.0
        assert usage.available_gb == 12.0
        assert usage.percent == 25.0

    def test_numeric_values(self):
        usage = ResourceUsage.from_dict({"total": 500, "free": 400, "used": 100, "percent": 20})

        assert usage.total_gb == 500.0
        assert usage.available_gb == 400.0
        assert usage.percent == 20.0

    def test_missing(self):
        assert ResourceUsage.from_dict(None) == ResourceUsage()


class TestSystemStatusSnapshot:
    def test_from_dict(self):
        snap = SystemStatusSnapshot.from_dict({
            "status": "healthy",
            "version": "1.2.0",
            "uptime": "3 days, 4:05:06",
            "memory_usage": {"total": "16.0 GB", "percent": "50.0%"},
            "database": {"connected": True, "type": "postgresql", "version": 15, "timescaledb_enabled": True},
        })

        assert snap.status == "healthy"
        assert snap.uptime == "3 days, 4:05:06"
        assert snap.memory.percent == 50.0
        assert snap.database.db_type == "postgresql"
        assert snap.database.version == "15"
        assert snap.database.timescaledb_enabled is True
        assert snap.database_connected is True

    def test_defaults(self):
        snap = SystemStatusSnapshot.from_dict({})

        assert snap.status == "unknown"
        assert snap.database is None
        assert snap.database_connected is False

    @pytest.mark.parametrize("payload", [None, [], "healthy"])
    def test_rejects_non_object(self, payload):
        with pytest.raises(ValueError):
            SystemStatusSnapshot.from_dict(payload)


class TestViewsAndState:
    def test_notification_view_total(self):
        view = NotificationView(visible=(), hidden_count=2, unread_count=0)
        assert view.total == 2

    def test_connection_state_defaults(self):
        state = ConnectionState()

        assert state.status == ConnectionStatus.DISCONNECTED
        assert state.attempts == 0
        assert not state.is_open
        assert not state.gave_up
