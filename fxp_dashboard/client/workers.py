"""Background workers for system status refresh.

Handles periodic status polling, the cached snapshot it feeds, and the
REST result listings (datasets, patterns, analyses).
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..console import log
from ..data.models import ListingSnapshot, SystemStatusSnapshot

CacheListener = Callable[["StatusCache"], None]


class StatusCache:
    """Latest known system status.

    Fed by REST polls through ``refresh()`` and by push frames through
    ``apply_push()``. Either one replaces the whole snapshot; a failed
    poll keeps the previous snapshot and records the error.
    """

    def __init__(self, fetch_fn: Callable[[], Dict[str, Any]], scheduler, source_name: str = "system_status"):
        self.fetch_fn = fetch_fn
        self.scheduler = scheduler
        self.source_name = source_name
        self._status: Optional[SystemStatusSnapshot] = None
        self._last_error: Optional[str] = None
        self._last_refresh_ts: Optional[float] = None
        self._poll_ok = False
        self._is_loading = False
        self._listeners: List[CacheListener] = []

    def subscribe(self, listener: CacheListener) -> None:
        self._listeners.append(listener)

    def refresh(self) -> bool:
        """Fetch a fresh snapshot from the backend.

        Returns:
            False if a fetch is already in flight, True if one was started
        """
        if self._is_loading:
            log(f"[{self.source_name}] Refresh already in progress.")
            return False
        self._is_loading = True
        self.scheduler.run_blocking(self.fetch_fn, self._on_fetched)
        return True

    def _on_fetched(self, payload: Any, exc: Optional[BaseException]) -> None:
        self._is_loading = False
        if exc is None:
            try:
                status = SystemStatusSnapshot.from_dict(payload)
            except ValueError as parse_exc:
                exc = parse_exc

        if exc is not None:
            self._last_error = str(exc) or type(exc).__name__
            self._poll_ok = False
            log(f"[{self.source_name}] Refresh failed: {self._last_error}")
        else:
            self._status = status
            self._last_error = None
            self._poll_ok = True
            self._last_refresh_ts = self.scheduler.now()
        self._notify()

    def apply_push(self, data: Dict[str, Any]) -> bool:
        """Replace the snapshot with one delivered over the push channel."""
        try:
            status = SystemStatusSnapshot.from_dict(data)
        except ValueError as exc:
            log(f"[{self.source_name}] Ignoring pushed status: {exc}")
            return False
        self._status = status
        self._last_refresh_ts = self.scheduler.now()
        self._notify()
        return True

    def snapshot(self) -> Tuple[Optional[SystemStatusSnapshot], Optional[str], Optional[float]]:
        """Get current state snapshot.

        Returns:
            Tuple of (status, last_error, last_refresh_timestamp)
        """
        return self._status, self._last_error, self._last_refresh_ts

    @property
    def status(self) -> Optional[SystemStatusSnapshot]:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def poll_ok(self) -> bool:
        """Whether the most recent REST poll succeeded."""
        return self._poll_ok

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def is_ready(self) -> bool:
        """Check if a snapshot is available."""
        return self._status is not None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                log(f"[{self.source_name}] Listener failed: {exc}")


class StatusPoller:
    """Refreshes a ``StatusCache`` on a fixed interval."""

    def __init__(self, cache: StatusCache, scheduler, interval_seconds: float, run_immediately: bool = True):
        self.cache = cache
        self.scheduler = scheduler
        self.interval = interval_seconds
        self._run_immediately = run_immediately
        self._timer = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        log(f"[status-poller] Starting (interval={self.interval:g}s)")
        if self._run_immediately:
            self._tick()
        else:
            self._timer = self.scheduler.call_later(self.interval, self._tick)

    def stop(self) -> None:
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        log("[status-poller] Stopped")

    def _tick(self) -> None:
        self._timer = None
        if not self._running:
            return
        try:
            self.cache.refresh()
        except Exception as exc:
            log(f"[status-poller] Refresh failed: {exc}")
        if self._running:
            self._timer = self.scheduler.call_later(self.interval, self._tick)


class ListingCache:
    """A REST-backed result listing with on-demand detail fetches.

    Mirrors ``StatusCache``: ``refresh()`` replaces the item list on success
    and records an error string on failure, leaving the previous items in
    place. Detail payloads are cached per key.
    """

    def __init__(
        self,
        name: str,
        list_fn: Callable[[], Any],
        scheduler,
        detail_fn: Optional[Callable[[str], Any]] = None,
    ):
        self.name = name
        self.list_fn = list_fn
        self.scheduler = scheduler
        self.detail_fn = detail_fn
        self._items: Tuple[Any, ...] = ()
        self._details: Dict[str, Any] = {}
        self._last_error: Optional[str] = None
        self._last_refresh_ts: Optional[float] = None
        self._is_loading = False
        self._listeners: List[Callable[["ListingCache"], None]] = []

    def subscribe(self, listener: Callable[["ListingCache"], None]) -> None:
        self._listeners.append(listener)

    def refresh(self) -> bool:
        """Fetch the listing.

        Returns:
            False if a fetch is already in flight, True if one was started
        """
        if self._is_loading:
            log(f"[{self.name}] Refresh already in progress.")
            return False
        self._is_loading = True
        self.scheduler.run_blocking(self.list_fn, self._on_listed)
        return True

    def fetch_details(self, key: str) -> None:
        """Fetch the detail payload for ``key`` and cache it."""
        if self.detail_fn is None:
            raise ValueError(f"{self.name} has no detail endpoint")
        detail_fn = self.detail_fn

        def _on_done(payload: Any, exc: Optional[BaseException]) -> None:
            if exc is not None:
                self._fail(f"Failed to fetch {self.name} details for {key}", exc)
                return
            self._details[key] = _freeze(payload)
            self._last_error = None
            self._notify()

        self.scheduler.run_blocking(lambda: detail_fn(key), _on_done)

    def _on_listed(self, payload: Any, exc: Optional[BaseException]) -> None:
        self._is_loading = False
        if exc is None:
            try:
                items = self._extract_items(payload)
            except ValueError as parse_exc:
                exc = parse_exc

        if exc is not None:
            self._fail(f"Failed to fetch {self.name}", exc)
            return
        self._items = tuple(_freeze(item) for item in items)
        self._last_error = None
        self._last_refresh_ts = self.scheduler.now()
        self._notify()

    def _extract_items(self, payload: Any) -> List[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            # {"patterns": [...]} style envelopes
            if isinstance(payload.get(self.name), list):
                return payload[self.name]
        raise ValueError(f"unexpected {self.name} payload: {type(payload).__name__}")

    def _fail(self, context: str, exc: BaseException) -> None:
        self._last_error = f"{context}: {str(exc) or type(exc).__name__}"
        log(f"[{self.name}] {self._last_error}")
        self._notify()

    def snapshot(self) -> ListingSnapshot:
        return ListingSnapshot(
            name=self.name,
            items=self._items,
            details=MappingProxyType(dict(self._details)),
            error=self._last_error,
            refreshed_at=self._last_refresh_ts,
            is_loading=self._is_loading,
        )

    @property
    def items(self) -> Tuple[Any, ...]:
        return self._items

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                log(f"[{self.name}] Listener failed: {exc}")


def _freeze(value: Any) -> Any:
    return MappingProxyType(dict(value)) if isinstance(value, dict) else value
