"""Inbound frame classification and dispatch.

Frames are JSON envelopes ``{"type": ..., "data": {...}}``. Recognized
types are ``notification``, ``task_update`` and ``system_status``. Unknown
types and malformed frames are logged and dropped; nothing raised while
routing reaches the caller.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from ..console import log
from ..data.models import JobDomain, JobStatus, JobUpdate, NotificationSeverity
from ..data.normalization import detect_job_domain, normalize_job_status, normalize_progress
from .channel import ChannelEvent, FrameReceived


class FrameError(ValueError):
    """Raised when an inbound frame cannot be understood."""


@dataclass(frozen=True)
class Envelope:
    type: str
    data: Dict[str, Any]


def parse_envelope(raw: Any) -> Envelope:
    """Parse a raw frame into a tagged envelope.

    Raises:
        FrameError: If the frame is not JSON or lacks ``type``/``data``.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise FrameError(f"invalid JSON: {exc}") from exc

    if not isinstance(message, dict):
        raise FrameError("envelope is not an object")
    msg_type = message.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise FrameError("envelope has no type")
    data = message.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrameError(f"{msg_type} data is not an object")
    return Envelope(type=msg_type, data=data)


def task_update_from_frame(data: Dict[str, Any]) -> JobUpdate:
    """Build a partial job update from ``task_update`` data."""
    task_id = data.get("task_id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise FrameError("task_update without task_id")

    status = None
    if data.get("status") is not None:
        normalized = normalize_job_status(data["status"])
        if normalized is None:
            raise FrameError(f"task_update {task_id} has unknown status {data['status']!r}")
        status = JobStatus(normalized)

    seq = data.get("seq")
    return JobUpdate(
        job_id=task_id,
        status=status,
        progress=normalize_progress(data.get("progress")),
        result=data.get("result"),
        error=str(data["error"]) if data.get("error") is not None else None,
        seq=seq if isinstance(seq, int) and not isinstance(seq, bool) else None,
    )


class MessageRouter:
    """Routes envelopes to the job registries, notification queue and status cache."""

    def __init__(
        self,
        registries: Mapping[JobDomain, Any],
        notifications,
        status_cache,
        *,
        maintenance_status: str = "maintenance",
    ):
        self.registries = registries
        self.notifications = notifications
        self.status_cache = status_cache
        self.maintenance_status = maintenance_status
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "notification": self._handle_notification,
            "task_update": self._handle_task_update,
            "system_status": self._handle_system_status,
        }

    def handle_event(self, event: ChannelEvent) -> None:
        """Channel event subscriber: routes received frames."""
        if isinstance(event, FrameReceived):
            self.route(event.text)

    def route(self, raw: Any) -> bool:
        """Route one frame. Returns True if it was applied."""
        try:
            envelope = parse_envelope(raw)
        except FrameError as exc:
            log(f"[router] Dropping malformed frame: {exc}")
            return False

        handler = self._handlers.get(envelope.type)
        if handler is None:
            log(f"[router] Unknown message type: {envelope.type!r}")
            return False

        try:
            handler(envelope.data)
        except FrameError as exc:
            log(f"[router] Dropping malformed {envelope.type} frame: {exc}")
            return False
        except Exception as exc:
            log(f"[router] ERROR: {envelope.type} handler failed: {exc}")
            return False
        return True

    def _handle_notification(self, data: Dict[str, Any]) -> None:
        raw_severity = data.get("type") or data.get("severity") or "info"
        try:
            severity = NotificationSeverity(str(raw_severity).lower())
        except ValueError:
            severity = NotificationSeverity.INFO
        self.notifications.add(
            severity,
            str(data.get("title") or "Notification"),
            str(data.get("message") or ""),
            persistent=bool(data.get("persistent", False)),
        )

    def _handle_task_update(self, data: Dict[str, Any]) -> None:
        update = task_update_from_frame(data)
        domain = JobDomain(detect_job_domain(update.job_id, data.get("domain")))
        outcome = self.registries[domain].upsert(update)

        if not outcome.entered_terminal:
            return
        job = outcome.job
        if job.status == JobStatus.COMPLETED:
            self.notifications.add(
                NotificationSeverity.SUCCESS,
                "Task Completed",
                f"Task {job.job_id} has completed successfully",
                dedup_key=f"task:{job.job_id}:completed",
            )
        else:
            self.notifications.add(
                NotificationSeverity.ERROR,
                "Task Failed",
                f"Task {job.job_id} has failed: {job.error or 'Unknown error'}",
                dedup_key=f"task:{job.job_id}:failed",
            )

    def _handle_system_status(self, data: Dict[str, Any]) -> None:
        if data.get("status") == self.maintenance_status:
            self.notifications.add(
                NotificationSeverity.WARNING,
                "System Maintenance",
                "System is entering maintenance mode",
                persistent=True,
                dedup_key="system:maintenance",
            )
            return
        self.status_cache.apply_push(data)
