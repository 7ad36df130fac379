"""Tests for the status cache, its poller and the result listings."""

import pytest

from fxp_dashboard.api.errors import ApiError
from fxp_dashboard.client.workers import ListingCache, StatusCache, StatusPoller


@pytest.fixture
def cache(backend, scheduler):
    return StatusCache(backend.get_system_status, scheduler)


def poll_count(backend):
    return sum(1 for name, _, _ in backend.calls if name == "get_system_status")


class TestStatusCache:
    def test_initially_empty(self, cache):
        assert cache.snapshot() == (None, None, None)
        assert not cache.is_ready()
        assert cache.poll_ok is False

    def test_refresh_success(self, cache, scheduler):
        assert cache.refresh() is True

        status, error, refreshed_at = cache.snapshot()
        assert status.status == "healthy"
        assert status.version == "1.2.0"
        assert status.memory.total_gb == 16.0
        assert status.memory.percent == 50.0
        assert status.disk.available_gb == 400.0
        assert status.database_connected is True
        assert error is None
        assert refreshed_at == scheduler.now()
        assert cache.poll_ok is True
        assert not cache.is_loading

    def test_failure_keeps_previous_snapshot(self, cache, backend, scheduler):
        cache.refresh()
        first = cache.status
        refreshed_at = cache.snapshot()[2]

        scheduler.advance(30)
        backend.status_error = ApiError("/api/system/status", "HTTP 503: Service Unavailable", status_code=503)
        cache.refresh()

        status, error, ts = cache.snapshot()
        assert status is first
        assert error == "[/api/system/status] HTTP 503: Service Unavailable"
        assert ts == refreshed_at
        assert cache.poll_ok is False

    def test_recovery_clears_error(self, cache, backend):
        backend.status_error = ApiError("/api/system/status", "down")
        cache.refresh()
        backend.status_error = None
        cache.refresh()

        assert cache.last_error is None
        assert cache.poll_ok is True

    def test_non_object_payload_is_an_error(self, cache, backend):
        backend.status_payload = ["healthy"]
        cache.refresh()

        assert cache.status is None
        assert "must be an object" in cache.last_error

    def test_refresh_skipped_while_in_flight(self, scheduler):
        pending = []

        class DeferredScheduler:
            def now(self):
                return scheduler.now()

            def run_blocking(self, fn, on_done):
                pending.append((fn, on_done))

        cache = StatusCache(lambda: {"status": "healthy"}, DeferredScheduler())

        assert cache.refresh() is True
        assert cache.is_loading
        assert cache.refresh() is False
        assert len(pending) == 1

        fn, on_done = pending.pop()
        on_done(fn(), None)
        assert not cache.is_loading
        assert cache.status.status == "healthy"

    def test_apply_push_replaces_wholesale(self, cache):
        cache.refresh()
        assert cache.apply_push({"status": "degraded"}) is True

        assert cache.status.status == "degraded"
        assert cache.status.database is None
        assert cache.status.memory.total_gb is None

    def test_apply_push_rejects_non_object(self, cache):
        assert cache.apply_push("healthy") is False
        assert cache.status is None

    def test_listeners(self, cache, backend):
        calls = []
        cache.subscribe(lambda c: calls.append(c.poll_ok))

        cache.refresh()
        backend.status_error = ApiError("/api/system/status", "down")
        cache.refresh()

        assert calls == [True, False]


class TestStatusPoller:
    def test_runs_immediately_then_on_interval(self, cache, backend, scheduler):
        poller = StatusPoller(cache, scheduler, interval_seconds=30)
        poller.start()

        assert poll_count(backend) == 1
        scheduler.advance(29)
        assert poll_count(backend) == 1
        scheduler.advance(1)
        assert poll_count(backend) == 2
        scheduler.advance(60)
        assert poll_count(backend) == 4

    def test_delayed_first_run(self, cache, backend, scheduler):
        poller = StatusPoller(cache, scheduler, interval_seconds=30, run_immediately=False)
        poller.start()

        assert poll_count(backend) == 0
        scheduler.advance(30)
        assert poll_count(backend) == 1

    def test_keeps_polling_after_failures(self, cache, backend, scheduler):
        backend.status_error = ApiError("/api/system/status", "down")
        poller = StatusPoller(cache, scheduler, interval_seconds=10)
        poller.start()
        scheduler.advance(30)

        assert poll_count(backend) == 4
        assert poller.is_running

    def test_stop(self, cache, backend, scheduler):
        poller = StatusPoller(cache, scheduler, interval_seconds=30)
        poller.start()
        poller.stop()
        scheduler.advance(300)

        assert poll_count(backend) == 1
        assert not poller.is_running
        assert scheduler.pending() == []

    def test_start_twice(self, cache, backend, scheduler):
        poller = StatusPoller(cache, scheduler, interval_seconds=30)
        poller.start()
        poller.start()

        assert poll_count(backend) == 1
        assert len(scheduler.pending()) == 1


@pytest.fixture
def patterns(backend, scheduler):
    return ListingCache("patterns", backend.list_patterns, scheduler, detail_fn=backend.get_pattern_details)


class TestListingCache:
    def test_initially_empty(self, patterns):
        snap = patterns.snapshot()

        assert snap.name == "patterns"
        assert snap.items == ()
        assert snap.error is None
        assert snap.refreshed_at is None

    def test_refresh_unwraps_envelope(self, patterns, scheduler):
        assert patterns.refresh() is True

        snap = patterns.snapshot()
        assert snap.items == ({"timeframe": "1h", "n_patterns": 120},)
        assert snap.refreshed_at == scheduler.now()
        assert not snap.is_loading

    def test_refresh_accepts_bare_list(self, backend, scheduler):
        datasets = ListingCache("datasets", backend.list_datasets, scheduler)
        datasets.refresh()

        assert [item["name"] for item in datasets.items] == ["EURUSD_1h"]

    def test_failure_keeps_previous_items(self, patterns, backend, scheduler):
        patterns.refresh()
        refreshed_at = patterns.snapshot().refreshed_at
        scheduler.advance(30)
        backend.errors["list_patterns"] = ApiError("/api/patterns/list", "HTTP 500: Internal Server Error")

        patterns.refresh()

        snap = patterns.snapshot()
        assert len(snap.items) == 1
        assert snap.refreshed_at == refreshed_at
        assert snap.error == "Failed to fetch patterns: [/api/patterns/list] HTTP 500: Internal Server Error"

    def test_recovery_clears_error(self, patterns, backend):
        backend.errors["list_patterns"] = ApiError("/api/patterns/list", "down")
        patterns.refresh()
        del backend.errors["list_patterns"]
        patterns.refresh()

        assert patterns.last_error is None

    def test_unexpected_payload_is_an_error(self, patterns, backend):
        backend.responses["list_patterns"] = {"items": []}
        patterns.refresh()

        assert patterns.items == ()
        assert patterns.last_error == "Failed to fetch patterns: unexpected patterns payload: dict"

    def test_refresh_skipped_while_in_flight(self, scheduler):
        pending = []

        class DeferredScheduler:
            def now(self):
                return scheduler.now()

            def run_blocking(self, fn, on_done):
                pending.append((fn, on_done))

        listing = ListingCache("datasets", lambda: [], DeferredScheduler())

        assert listing.refresh() is True
        assert listing.snapshot().is_loading
        assert listing.refresh() is False
        assert len(pending) == 1

    def test_items_are_read_only(self, patterns):
        patterns.refresh()

        with pytest.raises(TypeError):
            patterns.items[0]["n_patterns"] = 0

    def test_fetch_details(self, patterns, backend):
        backend.responses["get_pattern_details"] = {"timeframe": "1h", "clusters": [1, 2]}

        patterns.fetch_details("1h")

        assert backend.calls[-1] == ("get_pattern_details", ("1h",), {})
        details = patterns.snapshot().details
        assert details["1h"]["clusters"] == [1, 2]
        with pytest.raises(TypeError):
            details["4h"] = {}

    def test_fetch_details_failure(self, patterns, backend):
        backend.errors["get_pattern_details"] = ApiError("/api/patterns/1d", "HTTP 404: Not Found", status_code=404)

        patterns.fetch_details("1d")

        snap = patterns.snapshot()
        assert "1d" not in snap.details
        assert snap.error == "Failed to fetch patterns details for 1d: [/api/patterns/1d] HTTP 404: Not Found"

    def test_fetch_details_without_endpoint(self, backend, scheduler):
        datasets = ListingCache("datasets", backend.list_datasets, scheduler)

        with pytest.raises(ValueError):
            datasets.fetch_details("EURUSD_1h")

    def test_listeners(self, patterns, backend):
        calls = []
        patterns.subscribe(lambda listing: calls.append(listing.last_error))

        patterns.refresh()
        backend.errors["list_patterns"] = ApiError("/api/patterns/list", "down")
        patterns.refresh()

        assert calls == [None, "Failed to fetch patterns: [/api/patterns/list] down"]
