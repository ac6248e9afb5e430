"""Infrastructure layer for job state."""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Protocol

from render_api.domain import Job, JobState


class JobRepository(Protocol):
    """Storage contract for the job table."""

    def add_if_absent(self, job: Job) -> tuple[Job, bool]: ...

    def get(self, job_id: str) -> Job | None: ...

    def list_jobs(self) -> list[Job]: ...

    def transition(self, job_id: str, expected: JobState, new_state: JobState, **fields: Any) -> Job | None: ...

    def purge_completed_before(self, cutoff: datetime) -> int: ...

    def reset(self) -> None: ...


class InMemoryJobRepository:
    """Process-local job table.

    One lock guards the whole table; each critical section only touches a
    dict entry, so contention stays negligible next to render times. Callers
    only ever receive copies of the stored jobs.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def add_if_absent(self, job: Job) -> tuple[Job, bool]:
        with self._lock:
            existing = self._jobs.get(job.job_id)
            if existing is not None:
                return replace(existing), False
            self._jobs[job.job_id] = replace(job)
            return replace(job), True

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def list_jobs(self) -> list[Job]:
        with self._lock:
            jobs = [replace(job) for job in self._jobs.values()]
        jobs.sort(key=lambda item: item.created_at, reverse=True)
        return jobs

    def transition(self, job_id: str, expected: JobState, new_state: JobState, **fields: Any) -> Job | None:
        """Move a job from ``expected`` to ``new_state`` atomically.

        Returns the updated copy, or ``None`` when the job is unknown or not in
        ``expected`` (another worker got there first).
        """

        if expected.is_terminal:
            raise ValueError(f"cannot transition out of terminal state {expected.value}")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state is not expected:
                return None
            job.state = new_state
            for name, value in fields.items():
                setattr(job, name, value)
            return replace(job)

    def purge_completed_before(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.completed_at is not None and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()
