"""Domain layer definitions."""

from .jobs import (
    ErrorKind,
    Job,
    JobError,
    JobState,
    RenderError,
    RenderOutcome,
    RenderSuccess,
)

__all__ = [
    "ErrorKind",
    "Job",
    "JobError",
    "JobState",
    "RenderError",
    "RenderOutcome",
    "RenderSuccess",
]
