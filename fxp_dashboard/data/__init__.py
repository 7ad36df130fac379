"""Data layer - models, normalization, job registries and notifications."""

from .models import (
    ConnectionState,
    ConnectionStatus,
    DatabaseInfo,
    Job,
    JobDomain,
    JobStatus,
    JobUpdate,
    ListingSnapshot,
    Notification,
    NotificationSeverity,
    NotificationView,
    ResourceUsage,
    SystemStatusSnapshot,
)
from .notifications import NotificationQueue
from .registries import JobRegistry, UpsertResult

__all__ = [
    "ConnectionState",
    "ConnectionStatus",
    "DatabaseInfo",
    "Job",
    "JobDomain",
    "JobStatus",
    "JobUpdate",
    "ListingSnapshot",
    "Notification",
    "NotificationSeverity",
    "NotificationView",
    "ResourceUsage",
    "SystemStatusSnapshot",
    "NotificationQueue",
    "JobRegistry",
    "UpsertResult",
]
