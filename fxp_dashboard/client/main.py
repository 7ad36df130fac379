#!/usr/bin/env python3
"""
FXP Pattern Dashboard - headless session runner.

Keeps a live dashboard session (push channel + status polling) running and
echoes notifications and job transitions to the console.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Dict, Optional, Set

from ..console import log
from ..realtime.scheduler import AsyncioScheduler
from ..realtime.transport import WebSocketTransport
from .config import Config
from .session import DashboardSession


class ConsoleReporter:
    """Session listener printing what changed since the last render."""

    def __init__(self) -> None:
        self._seen_notifications: Set[str] = set()
        self._job_states: Dict[str, str] = {}
        self._connected: Optional[bool] = None

    def __call__(self, session: DashboardSession) -> None:
        snap = session.snapshot()

        if snap.connected != self._connected:
            self._connected = snap.connected
            log(f"[dashboard] Backend {'connected' if snap.connected else 'unreachable'}")

        for notification in reversed(snap.notifications.visible):
            if notification.id in self._seen_notifications:
                continue
            self._seen_notifications.add(notification.id)
            log(f"[notification] {notification.severity.value.upper()}: {notification.title} - {notification.message}")

        # Forget notifications the queue has already dropped
        self._seen_notifications &= {n.id for n in session.notifications.all()}

        job_states: Dict[str, str] = {}
        for domain, jobs in snap.jobs.items():
            for job in jobs:
                state = f"{job.status.value}:{job.progress:.0f}"
                if self._job_states.get(job.job_id) != state:
                    log(f"[jobs:{domain.value}] {job.job_id} {job.status.value} ({job.progress:.0f}%)")
                job_states[job.job_id] = state
        self._job_states = job_states


async def run_session(config: Config) -> None:
    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    transport = WebSocketTransport(loop, open_timeout=config.channel.open_timeout)
    session = DashboardSession(config, scheduler=scheduler, transport=transport)
    session.subscribe(ConsoleReporter())

    stop = asyncio.Event()
    session.start()
    try:
        await stop.wait()
    finally:
        session.stop()
        # Let the close handshake go out before the loop shuts down
        await asyncio.sleep(0.2)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "--config",
        help="Path to config.yaml (defaults to FXP_DASHBOARD_CONFIG or ./configs/config.yaml)",
    )
    parser.add_argument("--ws-url", help="Override the push channel URL")
    parser.add_argument("--api-url", help="Override the backend base URL")
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Override the system status poll interval in seconds",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    config = Config.load(args.config)

    if args.ws_url:
        config.channel.url = args.ws_url
    if args.api_url:
        config.api.base_url = args.api_url
    if args.poll_interval:
        config.status.poll_interval = args.poll_interval

    log(f"[config] Loaded: deployment={config.deployment_name!r}, channel={config.channel.url!r}, api={config.api.base_url!r}")

    try:
        asyncio.run(run_session(config))
    except KeyboardInterrupt:
        print("\n[dashboard] Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
