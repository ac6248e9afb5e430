from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel

from render_api.domain import ErrorKind, Job, JobError, JobState


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompileRequest(CamelModel):
    code: constr(min_length=1)
    job_id: constr(pattern=r"^[A-Za-z0-9_-]{1,128}$") | None = None


class ErrorDetails(CamelModel):
    message: str
    stderr: str = ""
    stdout: str = ""
    status_code: int | None = None

    @classmethod
    def from_error(cls, error: JobError) -> "ErrorDetails":
        return cls(message=error.message, stderr=error.stderr, stdout=error.stdout, status_code=error.exit_code)


class CompileSuccessResponse(CamelModel):
    success: bool = True
    url: str
    logs: str
    job_id: str


class CompileFailureResponse(CamelModel):
    success: bool = False
    logs: str
    error: str
    error_kind: ErrorKind
    error_details: ErrorDetails
    job_id: str


class JobAcceptedResponse(CamelModel):
    job_id: str
    status: JobState
    message: str


class JobStatusResponse(CamelModel):
    job_id: str
    status: JobState
    scene_name: str | None = None
    url: str | None = None
    logs: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    error_details: ErrorDetails | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        error = job.error
        return cls(
            job_id=job.job_id,
            status=job.state,
            scene_name=job.scene_name,
            url=job.artifact_url,
            logs=job.logs or None,
            error=(error.stderr or error.message) if error else None,
            error_kind=error.kind if error else None,
            error_details=ErrorDetails.from_error(error) if error else None,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class JobListResponse(CamelModel):
    items: list[JobStatusResponse] = Field(default_factory=list)
