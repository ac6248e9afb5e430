"""Domain entities for render job orchestration."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


class ErrorKind(str, Enum):
    """Classification of a failed job."""

    PROCESS_SPAWN_FAILURE = "process_spawn_failure"
    RENDER_FAILURE = "render_failure"
    ARTIFACT_MISSING = "artifact_missing"
    TIMEOUT = "timeout"
    STORAGE_ERROR = "storage_error"
    WORKSPACE_FAILURE = "workspace_failure"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True, slots=True)
class JobError:
    """Structured failure detail kept on a failed job."""

    kind: ErrorKind
    message: str
    stderr: str = ""
    stdout: str = ""
    exit_code: int | None = None


@dataclass(slots=True)
class Job:
    """A single compilation request and its lifecycle.

    Instances held by the job table are only mutated under its lock; every
    other component works on copies.
    """

    job_id: str
    source_code: str
    created_at: datetime
    state: JobState = JobState.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    scene_name: str | None = None
    artifact_key: str | None = None
    artifact_url: str | None = None
    error: JobError | None = None
    logs: str = ""

    @property
    def result(self) -> str | JobError | None:
        if self.state is JobState.SUCCEEDED:
            return self.artifact_url
        if self.state is JobState.FAILED:
            return self.error
        return None


@dataclass(frozen=True, slots=True)
class RenderSuccess:
    artifact: bytes
    scene_name: str
    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True, slots=True)
class RenderError:
    kind: ErrorKind
    message: str
    scene_name: str | None = None
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None

    def to_job_error(self) -> JobError:
        return JobError(
            kind=self.kind,
            message=self.message,
            stderr=self.stderr,
            stdout=self.stdout,
            exit_code=self.exit_code,
        )


RenderOutcome = RenderSuccess | RenderError
