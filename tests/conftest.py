"""Pytest configuration and shared fixtures."""

import itertools
import json

import pytest

from fxp_dashboard.client.config import Config
from fxp_dashboard.data.models import JobDomain
from fxp_dashboard.data.notifications import NotificationQueue
from fxp_dashboard.data.registries import JobRegistry
from fxp_dashboard.realtime.scheduler import ManualScheduler
from fxp_dashboard.realtime.transport import Connection, Transport


class FakeConnection(Connection):
    """In-memory push connection driven by the test."""

    def __init__(self, url, listener, auto_close=True):
        self.url = url
        self.listener = listener
        self.auto_close = auto_close
        self.sent = []
        self.closed_with = None

    def send(self, text):
        self.sent.append(text)

    def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        if self.auto_close:
            self.listener.on_close(code, reason)

    # Test helpers

    def open(self):
        self.listener.on_open()

    def receive(self, payload):
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.listener.on_message(text)

    def drop(self, code=1006, reason="connection lost"):
        self.listener.on_close(code, reason)


class FakeTransport(Transport):
    """Records every connection the channel manager opens."""

    def __init__(self):
        self.connections = []
        self.fail_with = None
        self.auto_close = True

    def connect(self, url, listener):
        if self.fail_with is not None:
            raise self.fail_with
        conn = FakeConnection(url, listener, auto_close=self.auto_close)
        self.connections.append(conn)
        return conn

    @property
    def latest(self):
        return self.connections[-1]


class FakeBackend:
    """Stand-in for BackendClient with scripted responses."""

    def __init__(self):
        self.status_payload = {
            "status": "healthy",
            "version": "1.2.0",
            "uptime": "3 days, 4:05:06",
            "memory_usage": {"total": "16.0 GB", "available": "8.0 GB", "used": "8.0 GB", "percent": "50.0%"},
            "disk_usage": {"total": "500 GB", "free": "400 GB", "used": "100 GB", "percent": 20.0},
            "database": {"connected": True, "type": "postgresql", "version": "15.3", "timescaledb_enabled": True},
        }
        self.status_error = None
        self.responses = {
            "list_datasets": [{"name": "EURUSD_1h", "rows": 52000}],
            "list_patterns": {"patterns": [{"timeframe": "1h", "n_patterns": 120}]},
            "list_analyses": {"analyses": [{"timeframe": "1h", "profitable_clusters": 4}]},
        }
        self.errors = {}
        self.calls = []
        self.closed = False

    def _call(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if name in self.errors:
            raise self.errors[name]
        return self.responses.get(name, {})

    def get_system_status(self):
        self.calls.append(("get_system_status", (), {}))
        if self.status_error is not None:
            raise self.status_error
        return self.status_payload

    def get_task(self, task_id):
        return self._call("get_task", task_id)

    def list_datasets(self):
        return self._call("list_datasets")

    def list_patterns(self):
        return self._call("list_patterns")

    def get_pattern_details(self, timeframe):
        return self._call("get_pattern_details", timeframe)

    def list_analyses(self):
        return self._call("list_analyses")

    def get_analysis_details(self, timeframe):
        return self._call("get_analysis_details", timeframe)

    def extract_patterns(self, **params):
        return self._call("extract_patterns", **params)

    def analyze_patterns(self, **params):
        return self._call("analyze_patterns", **params)

    def run_backtest(self, **params):
        return self._call("run_backtest", **params)

    def preprocess_data(self, **params):
        return self._call("preprocess_data", **params)

    def close(self):
        self.closed = True


@pytest.fixture
def scheduler():
    """Deterministic clock starting at a fixed epoch."""
    return ManualScheduler(start=1_700_000_000.0)


@pytest.fixture
def notifications(scheduler):
    counter = itertools.count(1)
    return NotificationQueue(scheduler, id_factory=lambda: f"n{next(counter)}")


@pytest.fixture
def registry(scheduler):
    return JobRegistry(JobDomain.EXTRACTION, clock=scheduler.now)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return Config()
