from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, Response

from render_api.application import InvalidJobIdError, get_job_orchestrator
from render_api.core.schema import CompileFailureResponse, CompileRequest, CompileSuccessResponse, ErrorDetails
from render_api.domain import ErrorKind, JobError, JobState
from render_api.infrastructure import ArtifactNotFoundError, StorageError

router = APIRouter(tags=["render"])


@router.post("/compile", response_model=CompileSuccessResponse, responses={500: {"model": CompileFailureResponse}})
async def compile_scene(payload: CompileRequest):
    """Render synchronously: the response is sent once the job is terminal."""

    orchestrator = get_job_orchestrator()
    try:
        submission = await orchestrator.submit(payload.code, payload.job_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    job = await orchestrator.wait_for(submission.job.job_id)

    if job.state is JobState.SUCCEEDED and job.artifact_url:
        return CompileSuccessResponse(url=job.artifact_url, logs=job.logs, job_id=job.job_id)

    error = job.error or JobError(kind=ErrorKind.INTERNAL_ERROR, message="Compilation failed")
    body = CompileFailureResponse(
        logs=job.logs,
        error=error.stderr or error.message,
        error_kind=error.kind,
        error_details=ErrorDetails.from_error(error),
        job_id=job.job_id,
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json", by_alias=True))


@router.get("/video/{video_id}")
async def get_video(video_id: str) -> Response:
    orchestrator = get_job_orchestrator()
    try:
        data = await orchestrator.fetch_artifact(video_id)
    except InvalidJobIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ArtifactNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Video not found") from exc
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return Response(content=data, media_type="video/mp4", headers={"Content-Length": str(len(data))})
