"""Configuration management for the dashboard session.

Supports YAML-based configuration; every value has a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass
class ChannelConfig:
    """Push-channel configuration."""

    url: str = "ws://localhost:8000/ws"
    reconnect_delay: float = 3.0  # seconds, multiplied by the attempt number
    max_reconnect_attempts: int = 5
    max_reconnect_delay: Optional[float] = None  # seconds, None = uncapped
    open_timeout: float = 10.0  # seconds


@dataclass
class NotificationConfig:
    """Notification queue configuration."""

    auto_dismiss_delay: float = 5.0  # seconds
    display_limit: int = 5


@dataclass
class StatusConfig:
    """System status polling configuration."""

    poll_interval: float = 30.0  # seconds
    run_immediately: bool = True
    maintenance_status: str = "maintenance"


@dataclass
class ApiConfig:
    """Backend REST configuration."""

    base_url: str = "http://localhost:8000"
    timeout: int = 10  # seconds
    verify_tls: bool = True
    ca_bundle: Optional[str] = None
    retries: int = 3


@dataclass
class Config:
    """Main configuration container."""

    deployment_name: str = "FXP Pattern Dashboard"

    channel: ChannelConfig = field(default_factory=ChannelConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        deployment = data.get("deployment", {})

        # Parse channel config
        ch_data = data.get("channel", {})
        max_delay = ch_data.get("max_reconnect_delay")
        channel = ChannelConfig(
            url=ch_data.get("url", "ws://localhost:8000/ws"),
            reconnect_delay=float(ch_data.get("reconnect_delay", 3.0)),
            max_reconnect_attempts=int(ch_data.get("max_reconnect_attempts", 5)),
            max_reconnect_delay=float(max_delay) if max_delay is not None else None,
            open_timeout=float(ch_data.get("open_timeout", 10.0)),
        )

        # Parse notification config
        notif_data = data.get("notifications", {})
        notifications = NotificationConfig(
            auto_dismiss_delay=float(notif_data.get("auto_dismiss_delay", 5.0)),
            display_limit=int(notif_data.get("display_limit", 5)),
        )

        # Parse status polling config
        status_data = data.get("status", {})
        status = StatusConfig(
            poll_interval=float(status_data.get("poll_interval", 30.0)),
            run_immediately=bool(status_data.get("run_immediately", True)),
            maintenance_status=status_data.get("maintenance_status", "maintenance"),
        )

        # Parse API config
        api_data = data.get("api", {})
        api = ApiConfig(
            base_url=api_data.get("base_url", "http://localhost:8000"),
            timeout=int(api_data.get("timeout", 10)),
            verify_tls=bool(api_data.get("verify_tls", True)),
            ca_bundle=api_data.get("ca_bundle"),
            retries=int(api_data.get("retries", 3)),
        )

        return cls(
            deployment_name=deployment.get("name", "FXP Pattern Dashboard"),
            channel=channel,
            notifications=notifications,
            status=status,
            api=api,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. FXP_DASHBOARD_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.fxp_dashboard/config.yaml
        6. Default config
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("FXP_DASHBOARD_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".fxp_dashboard" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "deployment": {
                "name": self.deployment_name,
            },
            "channel": {
                "url": self.channel.url,
                "reconnect_delay": self.channel.reconnect_delay,
                "max_reconnect_attempts": self.channel.max_reconnect_attempts,
                "max_reconnect_delay": self.channel.max_reconnect_delay,
                "open_timeout": self.channel.open_timeout,
            },
            "notifications": {
                "auto_dismiss_delay": self.notifications.auto_dismiss_delay,
                "display_limit": self.notifications.display_limit,
            },
            "status": {
                "poll_interval": self.status.poll_interval,
                "run_immediately": self.status.run_immediately,
                "maintenance_status": self.status.maintenance_status,
            },
            "api": {
                "base_url": self.api.base_url,
                "timeout": self.api.timeout,
                "verify_tls": self.api.verify_tls,
                "ca_bundle": self.api.ca_bundle,
                "retries": self.api.retries,
            },
        }
