"""Keyed job registries.

One registry per job domain. REST snapshots and push deltas both land
here through ``upsert``; the merge policy keeps terminal jobs terminal no
matter which of them arrives last.
"""

from __future__ import annotations

import dataclasses
import itertools
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ..console import log
from .models import Job, JobDomain, JobStatus, JobUpdate

# Job is None when the whole registry was cleared
JobListener = Callable[["JobRegistry", Optional[Job]], None]


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of a single upsert."""

    job: Job
    created: bool
    changed: FrozenSet[str]
    previous_status: Optional[JobStatus] = None

    @property
    def entered_terminal(self) -> bool:
        """True when this upsert moved the job into completed or failed."""
        if not self.job.is_terminal:
            return False
        return self.previous_status is None or not self.previous_status.is_terminal


class JobRegistry:
    """Deduplicated store of job records for one domain.

    Merge policy:
    - Fields absent from an update are left untouched.
    - Terminal jobs never leave their terminal status and keep their progress.
    - A running job never goes back to queued.
    - Completed forces progress to 100.
    - When both record and update carry ``seq``, an older update is dropped.
    """

    def __init__(self, domain: JobDomain, clock: Callable[[], float] = time.time):
        self.domain = domain
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._order: Dict[str, int] = {}
        self._counter = itertools.count()
        self._listeners: List[JobListener] = []
        self.error: Optional[str] = None

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def subscribe(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def upsert(self, update: JobUpdate) -> UpsertResult:
        """Insert a new job or merge ``update`` into the existing record."""
        now = self._clock()
        existing = self._jobs.get(update.job_id)

        if existing is None:
            job = self._create(update, now)
            self._jobs[job.job_id] = job
            self._order[job.job_id] = next(self._counter)
            self._notify(job)
            return UpsertResult(job=job, created=True, changed=frozenset(job.to_dict()))

        job, changed = self._merge(existing, update, now)
        if changed:
            self._jobs[job.job_id] = job
            self._notify(job)
        return UpsertResult(job=job, created=False, changed=changed, previous_status=existing.status)

    def remove(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        self._order.pop(job_id, None)
        if job is None:
            return False
        self._notify(job)
        return True

    def clear(self) -> None:
        """Drop every job. Listeners get ``None`` for the job."""
        if not self._jobs:
            return
        self._jobs.clear()
        self._order.clear()
        self._notify(None)

    def query(self, predicate: Optional[Callable[[Job], bool]] = None) -> List[Job]:
        """Return matching jobs, most recently started first."""
        jobs = [j for j in self._jobs.values() if predicate is None or predicate(j)]
        jobs.sort(key=lambda j: (j.started_at or 0.0, self._order.get(j.job_id, 0)), reverse=True)
        return jobs

    def active(self) -> List[Job]:
        return self.query(lambda j: not j.is_terminal)

    def set_error(self, message: str) -> None:
        self.error = message

    def clear_error(self) -> None:
        self.error = None

    def _create(self, update: JobUpdate, now: float) -> Job:
        status = update.status or JobStatus.QUEUED
        progress = update.progress if update.progress is not None else 0.0
        if status == JobStatus.COMPLETED:
            progress = 100.0
        return Job(
            job_id=update.job_id,
            domain=self.domain,
            status=status,
            progress=progress,
            parameters=MappingProxyType(dict(update.parameters or {})),
            result=_freeze(update.result) if status == JobStatus.COMPLETED else None,
            error=update.error if status == JobStatus.FAILED else None,
            started_at=update.started_at if update.started_at is not None else now,
            updated_at=now,
            completed_at=(update.completed_at or now) if status.is_terminal else None,
            seq=update.seq,
        )

    def _merge(self, existing: Job, update: JobUpdate, now: float):
        if update.seq is not None and existing.seq is not None and update.seq < existing.seq:
            log(
                f"[jobs:{self.domain.value}] Dropping stale update for {existing.job_id} "
                f"(seq {update.seq} < {existing.seq})"
            )
            return existing, frozenset()

        status = existing.status
        if update.status is not None and update.status != existing.status:
            if existing.is_terminal:
                log(
                    f"[jobs:{self.domain.value}] Ignoring {existing.status.value} -> "
                    f"{update.status.value} for {existing.job_id}"
                )
            elif existing.status == JobStatus.RUNNING and update.status == JobStatus.QUEUED:
                pass
            else:
                status = update.status

        progress = existing.progress
        if not existing.is_terminal:
            if update.progress is not None:
                progress = update.progress
            if status == JobStatus.COMPLETED:
                progress = 100.0

        fields = {"status": status, "progress": progress}
        if update.parameters is not None:
            fields["parameters"] = MappingProxyType(dict(update.parameters))
        if update.result is not None and status == JobStatus.COMPLETED:
            fields["result"] = _freeze(update.result)
        if update.error is not None and status == JobStatus.FAILED:
            fields["error"] = update.error
        if update.started_at is not None:
            fields["started_at"] = update.started_at
        if status.is_terminal and not existing.is_terminal:
            fields["completed_at"] = update.completed_at or now
        if update.seq is not None:
            fields["seq"] = max(update.seq, existing.seq or update.seq)

        changed = frozenset(k for k, v in fields.items() if getattr(existing, k) != v)
        if not changed:
            return existing, changed
        merged = dataclasses.replace(existing, updated_at=now, **fields)
        return merged, changed

    def _notify(self, job: Optional[Job]) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, job)
            except Exception as exc:
                log(f"[jobs:{self.domain.value}] Listener failed: {exc}")


def _freeze(value: Any) -> Any:
    return MappingProxyType(dict(value)) if isinstance(value, dict) else value
