"""Per-job scratch directories for renderer input and output."""
from __future__ import annotations

import logging
import shutil
import threading
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceInUseError(RuntimeError):
    """Raised when a job id already owns a live workspace."""


def _check_job_id(job_id: str) -> None:
    if not job_id or any(token in job_id for token in ("/", "\\", "..")):
        raise ValueError(f"invalid job id for workspace: {job_id!r}")


class ScopedWorkspace:
    """Directory owned by one execution attempt of one job."""

    def __init__(self, manager: "WorkspaceManager", job_id: str, root: Path) -> None:
        self._manager = manager
        self.job_id = job_id
        self.root = root
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def write(self, relative_path: str | Path, data: bytes) -> Path:
        """Write ``data`` below the workspace root and return the file path."""

        target = (self.root / relative_path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"path escapes workspace: {relative_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def release(self) -> None:
        """Remove the directory tree. Safe to call repeatedly; never raises."""

        if self._released:
            return
        self._released = True
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("[%s] could not remove workspace %s: %s", self.job_id, self.root, exc)
        finally:
            self._manager._forget(self.job_id)

    def __enter__(self) -> "ScopedWorkspace":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class WorkspaceManager:
    """Hands out one isolated directory per job under a dedicated root."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._live: set[str] = set()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def acquire(self, job_id: str) -> ScopedWorkspace:
        _check_job_id(job_id)
        with self._lock:
            if job_id in self._live:
                raise WorkspaceInUseError(f"job {job_id} already has a live workspace")
            self._live.add(job_id)

        # The random suffix keeps a directory left by a crashed run from being reused.
        path = self._root / f"{job_id}-{uuid.uuid4().hex[:8]}"
        workspace = ScopedWorkspace(self, job_id, path)
        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError:
            workspace.release()
            raise
        return workspace

    def is_live(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._live

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._live.discard(job_id)


__all__ = ["ScopedWorkspace", "WorkspaceInUseError", "WorkspaceManager"]
