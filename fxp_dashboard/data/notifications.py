"""Notification queue with per-item auto-dismiss timers."""

from __future__ import annotations

import dataclasses
import uuid
from typing import Any, Callable, List, Optional, Union

from ..console import log
from .models import Notification, NotificationSeverity, NotificationView

QueueListener = Callable[["NotificationQueue"], None]


class _Entry:
    """A notification and the timer that may remove it."""

    __slots__ = ("notification", "timer")

    def __init__(self, notification: Notification, timer: Any = None):
        self.notification = notification
        self.timer = timer

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class NotificationQueue:
    """Most-recent-first list of user-facing notifications.

    Non-persistent notifications get a one-shot dismiss timer at insertion.
    Dismissing, reading or pinning a notification cancels its timer.
    """

    def __init__(
        self,
        scheduler,
        *,
        auto_dismiss_delay: float = 5.0,
        display_limit: int = 5,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.scheduler = scheduler
        self.auto_dismiss_delay = auto_dismiss_delay
        self.display_limit = display_limit
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex[:12])
        self._entries: List[_Entry] = []
        self._listeners: List[QueueListener] = []

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    def add(
        self,
        severity: Union[NotificationSeverity, str],
        title: str,
        message: str = "",
        *,
        persistent: bool = False,
        dedup_key: Optional[str] = None,
    ) -> Notification:
        """Insert a notification at the front of the queue.

        If a live notification already carries ``dedup_key``, that one is
        returned and nothing is added.
        """
        if dedup_key is not None:
            for entry in self._entries:
                if entry.notification.dedup_key == dedup_key:
                    return entry.notification

        notification = Notification(
            id=self._id_factory(),
            severity=NotificationSeverity(severity),
            title=title,
            message=message,
            created_at=self.scheduler.now(),
            persistent=persistent,
            dedup_key=dedup_key,
        )
        entry = _Entry(notification)
        if not persistent:
            entry.timer = self.scheduler.call_later(self.auto_dismiss_delay, self._expire, notification.id)
        self._entries.insert(0, entry)
        self._notify()
        return notification

    def get(self, notification_id: str) -> Optional[Notification]:
        entry = self._find(notification_id)
        return entry.notification if entry else None

    def dismiss(self, notification_id: str) -> bool:
        entry = self._find(notification_id)
        if entry is None:
            return False
        entry.cancel_timer()
        self._entries.remove(entry)
        self._notify()
        return True

    def mark_read(self, notification_id: str) -> bool:
        return self._update(notification_id, read=True)

    def pin(self, notification_id: str) -> bool:
        """Make a notification persistent so it is never auto-dismissed."""
        return self._update(notification_id, persistent=True)

    def clear(self) -> None:
        for entry in self._entries:
            entry.cancel_timer()
        self._entries = []
        self._notify()

    def all(self) -> List[Notification]:
        return [e.notification for e in self._entries]

    def view(self) -> NotificationView:
        notifications = self.all()
        return NotificationView(
            visible=tuple(notifications[: self.display_limit]),
            hidden_count=max(0, len(notifications) - self.display_limit),
            unread_count=sum(1 for n in notifications if not n.read),
        )

    def _find(self, notification_id: str) -> Optional[_Entry]:
        return next((e for e in self._entries if e.notification.id == notification_id), None)

    def _update(self, notification_id: str, **changes: Any) -> bool:
        entry = self._find(notification_id)
        if entry is None:
            return False
        updated = dataclasses.replace(entry.notification, **changes)
        if updated == entry.notification:
            return True
        entry.notification = updated
        entry.cancel_timer()
        self._notify()
        return True

    def _expire(self, notification_id: str) -> None:
        entry = self._find(notification_id)
        if entry is None:
            return
        entry.timer = None
        if entry.notification.persistent or entry.notification.read:
            return
        self._entries.remove(entry)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                log(f"[notifications] Listener failed: {exc}")
