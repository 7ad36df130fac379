"""Data models for the dashboard synchronization core.

This module defines the records held by the in-memory store, following
these principles:

1. IMMUTABLE SNAPSHOTS
   - Every record is a frozen dataclass; registries replace records
     instead of mutating them, so a reader can keep a snapshot safely.

2. EXPLICIT UNITS
   - Time: epoch seconds (floats)
   - Progress and gauges: percent 0-100 (floats)
   - Memory and disk: gigabytes (floats)

3. NORMALIZED STATUS VALUES
   - Job: queued, running, completed, failed
   - Notification severity: info, success, warning, error
   - Connection: disconnected, connecting, open, closing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .normalization import normalize_memory_to_gb, parse_percent


# =============================================================================
# Status Enumerations
# =============================================================================


class JobStatus(str, Enum):
    """Lifecycle status of a background job."""

    QUEUED = "queued"  # Accepted by the backend, not started
    RUNNING = "running"  # Executing, progress is meaningful
    COMPLETED = "completed"  # Finished with a result
    FAILED = "failed"  # Finished with an error

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobDomain(str, Enum):
    """Registry a job belongs to."""

    EXTRACTION = "extraction"  # Pattern extraction
    ANALYSIS = "analysis"  # Statistical analysis and backtests
    PROCESSING = "processing"  # Dataset preprocessing
    SYSTEM = "system"  # Anything the backend reports without a known prefix


class NotificationSeverity(str, Enum):
    """Severity of a user-facing notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ConnectionStatus(str, Enum):
    """Push-channel connection status."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


# =============================================================================
# Jobs
# =============================================================================


@dataclass(frozen=True)
class Job:
    """A server-side long-running job tracked by id.

    Units:
    - progress: percent (0-100)
    - started_at, updated_at, completed_at: epoch seconds
    """

    job_id: str
    domain: JobDomain
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0  # Unit: percent (0-100)
    parameters: Mapping[str, Any] = field(default_factory=dict)
    result: Optional[Any] = None  # Only set when completed
    error: Optional[str] = None  # Only set when failed
    started_at: Optional[float] = None
    updated_at: Optional[float] = None
    completed_at: Optional[float] = None
    seq: Optional[int] = None  # Monotonic sequence number when the backend sends one

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "domain": self.domain.value,
            "status": self.status.value,
            "progress": self.progress,
            "parameters": dict(self.parameters),
            "result": dict(self.result) if isinstance(self.result, Mapping) else self.result,
            "error": self.error,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "seq": self.seq,
        }


@dataclass(frozen=True)
class JobUpdate:
    """Partial job update. Fields left as None are not touched by a merge."""

    job_id: str
    status: Optional[JobStatus] = None
    progress: Optional[float] = None
    parameters: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    seq: Optional[int] = None


# =============================================================================
# Notifications
# =============================================================================


@dataclass(frozen=True)
class Notification:
    """A user-facing alert.

    Only the read and persistent flags ever change after creation.
    """

    id: str
    severity: NotificationSeverity
    title: str
    message: str
    created_at: float  # Unit: epoch seconds
    persistent: bool = False  # Suppresses auto-dismiss
    read: bool = False
    dedup_key: Optional[str] = None  # At most one live entry per key


@dataclass(frozen=True)
class NotificationView:
    """What the presentation layer is allowed to render."""

    visible: Tuple[Notification, ...]
    hidden_count: int
    unread_count: int

    @property
    def total(self) -> int:
        return len(self.visible) + self.hidden_count


# =============================================================================
# System Status
# =============================================================================


@dataclass(frozen=True)
class ResourceUsage:
    """Memory or disk gauge.

    Units:
    - total_gb, used_gb, available_gb: gigabytes (float)
    - percent: percentage 0-100 (float)
    """

    total_gb: Optional[float] = None
    used_gb: Optional[float] = None
    available_gb: Optional[float] = None
    percent: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResourceUsage":
        if not isinstance(data, dict):
            return cls()
        # Disk gauges report "free", memory gauges report "available"
        available = data.get("available", data.get("free"))
        return cls(
            total_gb=_to_gb(data.get("total")),
            used_gb=_to_gb(data.get("used")),
            available_gb=_to_gb(available),
            percent=parse_percent(data.get("percent")),
        )


@dataclass(frozen=True)
class DatabaseInfo:
    """Backing-store connectivity reported by the backend."""

    connected: bool
    db_type: Optional[str] = None
    version: Optional[str] = None
    timescaledb_enabled: bool = False


@dataclass(frozen=True)
class SystemStatusSnapshot:
    """Latest known system health. Replaced wholesale, never merged."""

    status: str
    version: Optional[str] = None
    uptime: Optional[str] = None
    memory: ResourceUsage = field(default_factory=ResourceUsage)
    disk: ResourceUsage = field(default_factory=ResourceUsage)
    database: Optional[DatabaseInfo] = None

    @property
    def database_connected(self) -> bool:
        return bool(self.database and self.database.connected)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemStatusSnapshot":
        """Create a snapshot from a backend status payload.

        Raises:
            ValueError: If the payload is not a JSON object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"System status payload must be an object, got {type(data).__name__}")

        database = None
        db_data = data.get("database")
        if isinstance(db_data, dict):
            database = DatabaseInfo(
                connected=bool(db_data.get("connected", False)),
                db_type=db_data.get("type"),
                version=_to_str(db_data.get("version")),
                timescaledb_enabled=bool(db_data.get("timescaledb_enabled", False)),
            )

        return cls(
            status=str(data.get("status") or "unknown"),
            version=_to_str(data.get("version")),
            uptime=_to_str(data.get("uptime")),
            memory=ResourceUsage.from_dict(data.get("memory_usage")),
            disk=ResourceUsage.from_dict(data.get("disk_usage")),
            database=database,
        )


# =============================================================================
# Result Listings
# =============================================================================


@dataclass(frozen=True)
class ListingSnapshot:
    """One REST-backed result listing (datasets, patterns or analyses).

    Details are fetched on demand and kept per key (usually a timeframe).
    """

    name: str
    items: Tuple[Any, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    refreshed_at: Optional[float] = None  # Unit: epoch seconds
    is_loading: bool = False


# =============================================================================
# Connection
# =============================================================================


@dataclass(frozen=True)
class ConnectionState:
    """Push-channel state. One per session."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    attempts: int = 0  # Consecutive abnormal closes since the last open
    last_error: Optional[str] = None
    last_open_at: Optional[float] = None  # Unit: epoch seconds
    gave_up: bool = False  # Attempts exhausted, waiting for a manual trigger

    @property
    def is_open(self) -> bool:
        return self.status == ConnectionStatus.OPEN


def _to_gb(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return normalize_memory_to_gb(str(value))


def _to_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
