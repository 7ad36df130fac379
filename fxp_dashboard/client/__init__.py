"""Client layer - configuration, status workers and the dashboard session."""

from .config import ApiConfig, ChannelConfig, Config, NotificationConfig, StatusConfig
from .session import DashboardSession, SessionSnapshot, job_update_from_descriptor
from .workers import ListingCache, StatusCache, StatusPoller

__all__ = [
    "ApiConfig",
    "ChannelConfig",
    "Config",
    "NotificationConfig",
    "StatusConfig",
    "DashboardSession",
    "SessionSnapshot",
    "job_update_from_descriptor",
    "ListingCache",
    "StatusCache",
    "StatusPoller",
]
