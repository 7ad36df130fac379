"""Push-channel lifecycle and reconnection policy.

State machine:
    disconnected -> connecting -> open -> (closing | disconnected on drop)

A clean close (application-initiated, or close code 1000) never schedules
a reconnection. Any other close increments the attempt counter and
schedules a retry after ``reconnect_delay * attempts`` seconds, until
``max_attempts`` consecutive failures; then the manager gives up and asks
the user to reconnect manually.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from ..console import log
from ..data.models import ConnectionState, ConnectionStatus, NotificationSeverity
from .transport import NORMAL_CLOSURE, ABNORMAL_CLOSURE, ChannelListener, Connection, Transport


# =============================================================================
# Channel Events
# =============================================================================


@dataclass(frozen=True)
class ChannelOpened:
    url: str


@dataclass(frozen=True)
class FrameReceived:
    text: str


@dataclass(frozen=True)
class ChannelError:
    message: str


@dataclass(frozen=True)
class ChannelClosed:
    code: int
    reason: str
    clean: bool


ChannelEvent = Union[ChannelOpened, FrameReceived, ChannelError, ChannelClosed]
EventHandler = Callable[[ChannelEvent], None]


class _GenerationListener(ChannelListener):
    """Forwards callbacks for one connection; stale generations are ignored."""

    def __init__(self, manager: "ChannelManager", generation: int):
        self._manager = manager
        self._generation = generation

    def _current(self) -> bool:
        return self._manager._generation == self._generation

    def on_open(self) -> None:
        if self._current():
            self._manager._handle_open()

    def on_message(self, text: str) -> None:
        if self._current():
            self._manager._emit(FrameReceived(text))

    def on_error(self, exc: BaseException) -> None:
        if self._current():
            self._manager._handle_error(exc)

    def on_close(self, code: int, reason: str) -> None:
        if self._current():
            self._manager._handle_close(code, reason)


class ChannelManager:
    """Owns the single push connection of a session."""

    def __init__(
        self,
        url: str,
        transport: Transport,
        scheduler,
        notifications,
        *,
        reconnect_delay: float = 3.0,
        max_attempts: int = 5,
        max_reconnect_delay: Optional[float] = None,
    ):
        self.url = url
        self.transport = transport
        self.scheduler = scheduler
        self.notifications = notifications
        self.reconnect_delay = reconnect_delay
        self.max_attempts = max_attempts
        self.max_reconnect_delay = max_reconnect_delay

        self._state = ConnectionState()
        self._connection: Optional[Connection] = None
        self._reconnect_timer = None
        self._generation = 0
        self._closing = False
        self._handlers: List[EventHandler] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    # --- Public contract ---

    def open(self) -> None:
        """Open the channel unless it is already connecting or open.

        After the manager gave up, this starts a fresh attempt cycle.
        """
        if self._state.status in (ConnectionStatus.CONNECTING, ConnectionStatus.OPEN):
            return
        if self._state.gave_up:
            self._set_state(attempts=0, gave_up=False)
        self._connect()

    def reconnect(self) -> None:
        """Manual reconnect trigger."""
        log("[channel] Manual reconnect requested")
        self.open()

    def close(self) -> None:
        """Shut down cleanly. No reconnection follows."""
        self._cancel_reconnect()
        if self._connection is None:
            self._set_state(status=ConnectionStatus.DISCONNECTED)
            return
        self._closing = True
        self._set_state(status=ConnectionStatus.CLOSING)
        try:
            self._connection.close(NORMAL_CLOSURE, "Client closing")
        except Exception as exc:
            log(f"[channel] Close failed: {exc}")
            self._handle_close(NORMAL_CLOSURE, str(exc))

    def send(self, payload: Any) -> bool:
        """Send a JSON payload. Returns False (and logs) when not open."""
        if not self.is_open or self._connection is None:
            log(f"[channel] WARNING: channel is not open, dropping message: {payload!r}")
            return False
        try:
            self._connection.send(json.dumps(payload))
        except Exception as exc:
            log(f"[channel] WARNING: send failed: {exc}")
            return False
        return True

    # --- Environment triggers ---

    def on_visibility_change(self, visible: bool) -> None:
        if visible and not self.is_open:
            log("[channel] Page visible, reconnecting")
            self.open()

    def on_network_online(self) -> None:
        log("[channel] Network online, reconnecting")
        self.open()

    def on_network_offline(self) -> None:
        log("[channel] Network offline")
        self.notifications.add(
            NotificationSeverity.WARNING,
            "Network Offline",
            "You are currently offline. Real-time updates are disabled.",
        )

    def reconnect_delay_for(self, attempt: int) -> float:
        """Delay before reconnection attempt ``attempt`` (1-based)."""
        delay = self.reconnect_delay * attempt
        if self.max_reconnect_delay is not None:
            delay = min(delay, self.max_reconnect_delay)
        return delay

    # --- Internals ---

    def _connect(self) -> None:
        self._cancel_reconnect()
        self._generation += 1
        self._closing = False
        self._set_state(status=ConnectionStatus.CONNECTING)
        try:
            self._connection = self.transport.connect(self.url, _GenerationListener(self, self._generation))
        except Exception as exc:
            log(f"[channel] ERROR: failed to create connection: {exc}")
            self._set_state(last_error=str(exc))
            self._handle_close(ABNORMAL_CLOSURE, str(exc))

    def _handle_open(self) -> None:
        log(f"[channel] Connected to {self.url}")
        self._set_state(
            status=ConnectionStatus.OPEN,
            attempts=0,
            gave_up=False,
            last_error=None,
            last_open_at=self.scheduler.now(),
        )
        self.notifications.add(NotificationSeverity.SUCCESS, "Connected", "Real-time updates enabled")
        self._emit(ChannelOpened(self.url))

    def _handle_error(self, exc: BaseException) -> None:
        log(f"[channel] Connection error: {exc}")
        self._set_state(last_error=str(exc) or type(exc).__name__)
        self._emit(ChannelError(self._state.last_error))

    def _handle_close(self, code: int, reason: str) -> None:
        clean = self._closing or code == NORMAL_CLOSURE
        self._connection = None
        self._closing = False
        self._generation += 1
        self._set_state(status=ConnectionStatus.DISCONNECTED)
        log(f"[channel] Disconnected (code={code}, reason={reason!r})")
        self._emit(ChannelClosed(code=code, reason=reason, clean=clean))

        if clean:
            return

        self.notifications.add(
            NotificationSeverity.WARNING,
            "Disconnected",
            "Real-time updates disabled. Attempting to reconnect...",
        )
        attempts = self._state.attempts + 1
        if attempts >= self.max_attempts:
            log(f"[channel] ERROR: giving up after {attempts} consecutive failures")
            self._set_state(attempts=attempts, gave_up=True)
            self.notifications.add(
                NotificationSeverity.ERROR,
                "Connection Failed",
                "Unable to establish real-time connection. Please reconnect manually.",
                persistent=True,
                dedup_key="channel:gave-up",
            )
            return

        delay = self.reconnect_delay_for(attempts)
        self._set_state(attempts=attempts)
        log(f"[channel] Reconnection attempt {attempts}/{self.max_attempts} in {delay:g}s")
        self._reconnect_timer = self.scheduler.call_later(delay, self._reconnect_fired)

    def _reconnect_fired(self) -> None:
        self._reconnect_timer = None
        if self._state.status in (ConnectionStatus.CONNECTING, ConnectionStatus.OPEN):
            return
        self._connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _set_state(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)

    def _emit(self, event: ChannelEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as exc:
                log(f"[channel] Event handler failed for {type(event).__name__}: {exc}")
