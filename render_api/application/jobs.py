"""Application service owning the render job lifecycle."""
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from render_api.config import Settings, get_settings
from render_api.domain import ErrorKind, Job, JobError, JobState, RenderError, RenderOutcome
from render_api.infrastructure import (
    InMemoryJobRepository,
    JobRepository,
    StorageError,
    StorageGateway,
    artifact_key,
    get_storage_gateway,
)
from render_api.workers.pipeline import RenderPipeline

logger = logging.getLogger(__name__)

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class InvalidJobIdError(ValueError):
    """Raised for caller-supplied job ids that are not safe to use."""


class JobNotFoundError(KeyError):
    """Raised when a job id is not present in the job table."""


class Renderer(Protocol):
    async def render(self, job_id: str, source_code: str) -> RenderOutcome: ...


@dataclass(frozen=True)
class SubmissionResult:
    job: Job
    created: bool


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


def validate_job_id(job_id: str) -> str:
    if not JOB_ID_PATTERN.fullmatch(job_id or ""):
        raise InvalidJobIdError("jobId must be 1-128 characters of letters, digits, '-' or '_'")
    return job_id


def _failure_logs(error: JobError) -> str:
    sections = [error.message]
    if error.stdout:
        sections.append(f"stdout:\n{error.stdout}")
    if error.stderr:
        sections.append(f"stderr:\n{error.stderr}")
    return "\n\n".join(sections)


class JobOrchestrator:
    """Tracks jobs from submission to a terminal state.

    Every accepted job gets its own asyncio task; a semaphore caps how many of
    them render at once. The same state machine backs both access patterns:
    ``wait_for`` blocks until the job is terminal, ``get_status`` returns the
    current snapshot for polling.
    """

    def __init__(
        self,
        repository: JobRepository,
        pipeline: Renderer,
        storage: StorageGateway,
        *,
        max_concurrency: int = 4,
        retention: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._repository = repository
        self._pipeline = pipeline
        self._storage = storage
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._retention = retention
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._sweeper: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # submission & queries
    # ------------------------------------------------------------------
    async def submit(self, source_code: str, job_id: str | None = None) -> SubmissionResult:
        """Record a job and start rendering it in the background.

        Re-submitting a known id returns the existing job without dispatching
        it again.
        """

        if not source_code or not source_code.strip():
            raise ValueError("code cannot be empty")
        job_id = validate_job_id(job_id) if job_id is not None else generate_job_id()

        job, created = self._repository.add_if_absent(
            Job(job_id=job_id, source_code=source_code, created_at=self._clock())
        )
        if not created:
            logger.info("[%s] duplicate submission, returning existing job (%s)", job_id, job.state.value)
            return SubmissionResult(job=job, created=False)

        logger.info("[%s] job created", job_id)
        self._done[job_id] = asyncio.Event()
        self._tasks[job_id] = asyncio.create_task(self._execute(job_id, source_code), name=f"render-{job_id}")
        return SubmissionResult(job=job, created=True)

    def get_status(self, job_id: str) -> Job | None:
        return self._repository.get(job_id)

    def list_jobs(self) -> list[Job]:
        return self._repository.list_jobs()

    async def wait_for(self, job_id: str, timeout: float | None = None) -> Job:
        """Block until the job reaches a terminal state and return it."""

        job = self._repository.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.state.is_terminal:
            return job

        event = self._done.get(job_id)
        if event is not None:
            await asyncio.wait_for(event.wait(), timeout=timeout)

        job = self._repository.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def fetch_artifact(self, job_id: str) -> bytes:
        """Download a rendered artifact from storage by job id."""

        validate_job_id(job_id)
        return await asyncio.to_thread(self._storage.download, artifact_key(job_id))

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------
    async def _execute(self, job_id: str, source_code: str) -> None:
        try:
            async with self._semaphore:
                if self._mark_started(job_id) is None:
                    logger.warning("[%s] job is no longer pending, not rendering", job_id)
                    return
                logger.info("[%s] job processing started", job_id)
                await self._run(job_id, source_code)
        except asyncio.CancelledError:
            self._abort(job_id, "Job was cancelled before completion")
            raise
        except Exception as exc:
            logger.exception("[%s] unexpected error in job processing", job_id)
            self._abort(job_id, f"Unexpected error during compilation: {exc}")
        finally:
            self._tasks.pop(job_id, None)
            event = self._done.get(job_id)
            if event is not None:
                event.set()

    def _mark_started(self, job_id: str) -> Job | None:
        return self._repository.transition(job_id, JobState.PENDING, JobState.RUNNING, started_at=self._clock())

    def _abort(self, job_id: str, message: str) -> None:
        """Fail a job that did not finish, walking it through Running if it never started."""

        if self._mark_started(job_id) is not None:
            logger.info("[%s] job aborted before it started rendering", job_id)
        error = JobError(kind=ErrorKind.INTERNAL_ERROR, message=message)
        self._complete(job_id, JobState.FAILED, error=error, logs=error.message)

    async def _run(self, job_id: str, source_code: str) -> None:
        outcome = await self._pipeline.render(job_id, source_code)

        if isinstance(outcome, RenderError):
            error = outcome.to_job_error()
            logger.info("[%s] job failed: %s (%s)", job_id, error.message, error.kind.value)
            self._complete(
                job_id,
                JobState.FAILED,
                error=error,
                logs=_failure_logs(error),
                scene_name=outcome.scene_name,
            )
            return

        key = artifact_key(job_id)
        logger.info("[%s] uploading %d bytes as %s", job_id, len(outcome.artifact), key)
        try:
            url = await asyncio.to_thread(self._storage.upload, outcome.artifact, key)
        except StorageError as exc:
            logger.error("[%s] upload failed: %s", job_id, exc)
            error = JobError(
                kind=ErrorKind.STORAGE_ERROR,
                message=str(exc),
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                exit_code=0,
            )
            self._complete(
                job_id,
                JobState.FAILED,
                error=error,
                logs=f"Render completed but the upload failed: {exc}\n\nCompilation output:\n{outcome.stdout}",
                scene_name=outcome.scene_name,
            )
            return

        logger.info("[%s] job completed successfully: %s", job_id, url)
        self._complete(
            job_id,
            JobState.SUCCEEDED,
            artifact_key=key,
            artifact_url=url,
            logs=(
                f"Render job completed successfully. Job ID: {job_id}. Video uploaded: {url}"
                f"\n\nCompilation output:\n{outcome.stdout}"
            ),
            scene_name=outcome.scene_name,
        )

    def _complete(self, job_id: str, state: JobState, **fields: Any) -> Job | None:
        fields["completed_at"] = self._clock()
        job = self._repository.transition(job_id, JobState.RUNNING, state, **fields)
        if job is not None:
            return job
        logger.warning("[%s] could not record terminal state %s", job_id, state.value)
        return None

    # ------------------------------------------------------------------
    # housekeeping
    # ------------------------------------------------------------------
    def sweep_expired(self, now: datetime | None = None) -> int:
        """Drop terminal jobs that completed before the retention window."""

        cutoff = (now or self._clock()) - self._retention
        cleared = self._repository.purge_completed_before(cutoff)
        for job_id in list(self._done):
            if job_id not in self._tasks and self._repository.get(job_id) is None:
                del self._done[job_id]
        if cleared:
            logger.info("cleared %d old jobs from memory", cleared)
        return cleared

    def start_sweeper(self, interval: float) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_periodically(interval), name="job-retention-sweeper")

    async def _sweep_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("job retention sweep failed")

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def shutdown(self) -> None:
        """Stop the sweeper and cancel renders that are still in flight."""

        await self.stop_sweeper()
        pending = dict(self._tasks)
        for task in pending.values():
            task.cancel()
        if pending:
            await asyncio.gather(*pending.values(), return_exceptions=True)

        # A task cancelled before its first step never ran its own cleanup.
        for job_id in pending:
            job = self._repository.get(job_id)
            if job is not None and not job.state.is_terminal:
                self._abort(job_id, "Job was cancelled before completion")
            self._tasks.pop(job_id, None)
            event = self._done.get(job_id)
            if event is not None:
                event.set()

    def reset(self) -> None:
        self._repository.reset()
        self._done.clear()


def build_job_orchestrator(settings: Settings) -> JobOrchestrator:
    return JobOrchestrator(
        InMemoryJobRepository(),
        RenderPipeline.from_settings(settings),
        get_storage_gateway(),
        max_concurrency=settings.max_concurrent_renders,
        retention=timedelta(hours=settings.job_retention_hours),
    )


_orchestrator: JobOrchestrator | None = None


def configure_job_orchestrator(orchestrator: JobOrchestrator | None) -> None:
    """Install the orchestrator used by the HTTP layer (``None`` rebuilds lazily)."""

    global _orchestrator
    _orchestrator = orchestrator


def get_job_orchestrator(settings: Settings | None = None) -> JobOrchestrator:
    """Return the singleton job orchestrator for the process.

    The first call builds it from ``settings`` (the environment when omitted);
    later calls return the installed instance.
    """

    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_job_orchestrator(settings or get_settings())
    return _orchestrator


def reset_job_state() -> None:
    """Forget every job (used in tests)."""

    if _orchestrator is not None:
        _orchestrator.reset()
