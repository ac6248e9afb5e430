"""Application services."""

from .jobs import (
    InvalidJobIdError,
    JobNotFoundError,
    JobOrchestrator,
    SubmissionResult,
    build_job_orchestrator,
    configure_job_orchestrator,
    get_job_orchestrator,
    reset_job_state,
)

__all__ = [
    "InvalidJobIdError",
    "JobNotFoundError",
    "JobOrchestrator",
    "SubmissionResult",
    "build_job_orchestrator",
    "configure_job_orchestrator",
    "get_job_orchestrator",
    "reset_job_state",
]
