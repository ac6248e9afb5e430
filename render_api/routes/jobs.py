from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from render_api.application import get_job_orchestrator
from render_api.core.schema import CompileRequest, JobAcceptedResponse, JobListResponse, JobStatusResponse

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobAcceptedResponse, status_code=202)
async def submit_job(payload: CompileRequest):
    """Queue a render and return immediately; poll ``GET /jobs/{job_id}``."""

    orchestrator = get_job_orchestrator()
    try:
        submission = await orchestrator.submit(payload.code, payload.job_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    job = submission.job
    if not submission.created:
        body = JobAcceptedResponse(job_id=job.job_id, status=job.state, message="Job already exists")
        return JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))
    return JobAcceptedResponse(job_id=job.job_id, status=job.state, message="Job accepted")


@router.get("", response_model=JobListResponse)
async def list_jobs() -> JobListResponse:
    orchestrator = get_job_orchestrator()
    return JobListResponse(items=[JobStatusResponse.from_job(job) for job in orchestrator.list_jobs()])


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str) -> JobStatusResponse:
    job = get_job_orchestrator().get_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return JobStatusResponse.from_job(job)
