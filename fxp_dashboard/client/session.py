"""Dashboard session: the explicit owner of all synchronization state.

A session wires the push channel, message router, job registries,
notification queue and status cache together, and exposes read-only
snapshots to whatever renders them.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..api.backend import BackendClient
from ..api.errors import ApiError
from ..console import log
from ..data.models import (
    ConnectionState,
    Job,
    JobDomain,
    JobStatus,
    JobUpdate,
    ListingSnapshot,
    NotificationView,
    SystemStatusSnapshot,
)
from ..data.normalization import normalize_job_status, normalize_progress, parse_timestamp
from ..data.notifications import NotificationQueue
from ..data.registries import JobRegistry
from ..realtime.channel import ChannelClosed, ChannelEvent, ChannelManager, ChannelOpened
from ..realtime.router import MessageRouter
from .config import Config
from .workers import ListingCache, StatusCache, StatusPoller

SessionListener = Callable[["DashboardSession"], None]

# kind -> (registry, job id prefix, BackendClient method)
JOB_KINDS: Dict[str, Tuple[JobDomain, str, str]] = {
    "extraction": (JobDomain.EXTRACTION, "extract", "extract_patterns"),
    "analysis": (JobDomain.ANALYSIS, "analysis", "analyze_patterns"),
    "backtest": (JobDomain.ANALYSIS, "backtest", "run_backtest"),
    "processing": (JobDomain.PROCESSING, "preprocess", "preprocess_data"),
}

# listing name -> (BackendClient list method, detail method or None)
LISTINGS: Dict[str, Tuple[str, Optional[str]]] = {
    "datasets": ("list_datasets", None),
    "patterns": ("list_patterns", "get_pattern_details"),
    "analyses": ("list_analyses", "get_analysis_details"),
}


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the whole store, taken once per render."""

    connection: ConnectionState
    connected: bool
    jobs: Mapping[JobDomain, Tuple[Job, ...]]
    job_errors: Mapping[JobDomain, Optional[str]]
    notifications: NotificationView
    listings: Mapping[str, ListingSnapshot]
    status: Optional[SystemStatusSnapshot]
    status_error: Optional[str]
    status_refreshed_at: Optional[float]


def job_update_from_descriptor(
    descriptor: Any,
    *,
    prefix: str,
    params: Optional[Dict[str, Any]] = None,
    now: float,
    job_id: Optional[str] = None,
) -> JobUpdate:
    """Turn a REST job descriptor into a job update.

    Descriptors with a task id but no status are queued. Synchronous
    endpoints return the result itself (no task id, no status); those
    become completed jobs under a generated id.
    """
    params = params or {}
    data = descriptor if isinstance(descriptor, dict) else {}

    job_id = job_id or data.get("task_id") or data.get("id") or data.get("job_id")
    synchronous = job_id is None
    if synchronous:
        timeframe = params.get("timeframe") or data.get("timeframe")
        job_id = "_".join(str(p) for p in (prefix, timeframe, int(now * 1000)) if p)

    raw_status = normalize_job_status(data.get("status"))
    if raw_status is not None:
        status = JobStatus(raw_status)
    elif synchronous:
        status = JobStatus.COMPLETED
    else:
        status = JobStatus.QUEUED

    result = data.get("result")
    if result is None and synchronous and status == JobStatus.COMPLETED:
        result = dict(data)

    seq = data.get("seq")
    return JobUpdate(
        job_id=str(job_id),
        status=status,
        progress=normalize_progress(data.get("progress")),
        parameters=dict(params) if params else None,
        result=result,
        error=str(data["error"]) if data.get("error") is not None else None,
        started_at=parse_timestamp(data.get("started_at")),
        completed_at=parse_timestamp(data.get("completed_at")),
        seq=seq if isinstance(seq, int) and not isinstance(seq, bool) else None,
    )


class DashboardSession:
    """One client session. Construct it, ``start()`` it, read ``snapshot()``."""

    def __init__(self, config: Config, *, scheduler, transport, api: Optional[BackendClient] = None):
        self.config = config
        self.scheduler = scheduler
        self.api = api or BackendClient(
            base_url=config.api.base_url,
            timeout=config.api.timeout,
            verify=config.api.verify_tls,
            ca_bundle=config.api.ca_bundle,
            retries=config.api.retries,
        )

        self.notifications = NotificationQueue(
            scheduler,
            auto_dismiss_delay=config.notifications.auto_dismiss_delay,
            display_limit=config.notifications.display_limit,
        )
        self.registries: Dict[JobDomain, JobRegistry] = {
            domain: JobRegistry(domain, clock=scheduler.now) for domain in JobDomain
        }
        self.status = StatusCache(self.api.get_system_status, scheduler)
        self.poller = StatusPoller(
            self.status,
            scheduler,
            interval_seconds=config.status.poll_interval,
            run_immediately=config.status.run_immediately,
        )
        self.listings: Dict[str, ListingCache] = {
            name: ListingCache(
                name,
                getattr(self.api, list_method),
                scheduler,
                detail_fn=getattr(self.api, detail_method) if detail_method else None,
            )
            for name, (list_method, detail_method) in LISTINGS.items()
        }
        self.router = MessageRouter(
            self.registries,
            self.notifications,
            self.status,
            maintenance_status=config.status.maintenance_status,
        )
        self.channel = ChannelManager(
            config.channel.url,
            transport,
            scheduler,
            self.notifications,
            reconnect_delay=config.channel.reconnect_delay,
            max_attempts=config.channel.max_reconnect_attempts,
            max_reconnect_delay=config.channel.max_reconnect_delay,
        )

        self._listeners: List[SessionListener] = []
        self.channel.subscribe(self._on_channel_event)
        self.notifications.subscribe(lambda _queue: self._changed())
        self.status.subscribe(lambda _cache: self._changed())
        for listing in self.listings.values():
            listing.subscribe(lambda _listing: self._changed())
        for registry in self.registries.values():
            registry.subscribe(lambda _registry, _job: self._changed())

    # --- Lifecycle ---

    def start(self) -> None:
        log(f"[session] Starting {self.config.deployment_name}")
        self.channel.open()
        self.poller.start()
        self.refresh_listings()

    def stop(self) -> None:
        log("[session] Stopping")
        self.poller.stop()
        self.channel.close()
        self.api.close()

    # --- Connectivity ---

    @property
    def connected(self) -> bool:
        """True when the last poll succeeded or the push channel is open."""
        return self.status.poll_ok or self.channel.is_open

    def reconnect(self) -> None:
        self.channel.reconnect()

    def on_visibility_change(self, visible: bool) -> None:
        self.channel.on_visibility_change(visible)

    def on_network_online(self) -> None:
        self.channel.on_network_online()

    def on_network_offline(self) -> None:
        self.channel.on_network_offline()

    def send(self, payload: Any) -> bool:
        return self.channel.send(payload)

    # --- REST-driven operations ---

    def refresh_status(self) -> bool:
        return self.status.refresh()

    def refresh_listings(self) -> None:
        """Reload the dataset, pattern and analysis listings."""
        for listing in self.listings.values():
            listing.refresh()

    def fetch_details(self, listing: str, key: str) -> None:
        """Load the detail payload for one pattern or analysis timeframe."""
        try:
            cache = self.listings[listing]
        except KeyError:
            raise ValueError(f"Unknown listing: {listing!r}") from None
        cache.fetch_details(key)

    def start_job(self, kind: str, **params: Any) -> None:
        """Ask the backend to start a job and track its descriptor.

        Kinds: extraction, analysis, backtest, processing.
        """
        try:
            domain, prefix, method_name = JOB_KINDS[kind]
        except KeyError:
            raise ValueError(f"Unknown job kind: {kind!r}") from None
        registry = self.registries[domain]
        call = getattr(self.api, method_name)

        def _on_done(descriptor: Any, exc: Optional[BaseException]) -> None:
            if exc is not None:
                self._record_api_failure(registry, f"Failed to start {kind}", exc)
                return
            registry.clear_error()
            update = job_update_from_descriptor(descriptor, prefix=prefix, params=params, now=self.scheduler.now())
            registry.upsert(update)
            log(f"[session] {kind} job {update.job_id} is {update.status.value}")

        self.scheduler.run_blocking(lambda: call(**params), _on_done)

    def sync_job(self, domain: JobDomain, job_id: str) -> None:
        """Fetch one job from the backend and merge it into its registry."""
        registry = self.registries[domain]

        def _on_done(descriptor: Any, exc: Optional[BaseException]) -> None:
            if exc is not None:
                self._record_api_failure(registry, f"Failed to fetch task {job_id}", exc)
                return
            registry.clear_error()
            registry.upsert(job_update_from_descriptor(descriptor, prefix="", now=self.scheduler.now(), job_id=job_id))

        self.scheduler.run_blocking(lambda: self.api.get_task(job_id), _on_done)

    def _record_api_failure(self, registry: JobRegistry, context: str, exc: BaseException) -> None:
        if not isinstance(exc, ApiError):
            log(f"[session] ERROR: unexpected {type(exc).__name__} from backend call")
        message = f"{context}: {exc}"
        log(f"[session] {message}")
        registry.set_error(message)
        self._changed()

    # --- Snapshots ---

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def snapshot(self) -> SessionSnapshot:
        status, status_error, refreshed_at = self.status.snapshot()
        return SessionSnapshot(
            connection=self.channel.state,
            connected=self.connected,
            jobs=MappingProxyType({d: tuple(r.query()) for d, r in self.registries.items()}),
            job_errors=MappingProxyType({d: r.error for d, r in self.registries.items()}),
            notifications=self.notifications.view(),
            listings=MappingProxyType({name: c.snapshot() for name, c in self.listings.items()}),
            status=status,
            status_error=status_error,
            status_refreshed_at=refreshed_at,
        )

    def _on_channel_event(self, event: ChannelEvent) -> None:
        self.router.handle_event(event)
        if isinstance(event, (ChannelOpened, ChannelClosed)):
            self._changed()

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                log(f"[session] Listener failed: {exc}")
