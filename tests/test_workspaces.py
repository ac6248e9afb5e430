import shutil
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from render_api.core.workspaces import WorkspaceInUseError, WorkspaceManager


def test_acquire_write_and_release(workspaces_root):
    manager = WorkspaceManager(workspaces_root)

    workspace = manager.acquire("job-1")
    assert workspace.root.is_dir()
    assert workspace.root.parent == workspaces_root
    assert workspace.root.name.startswith("job-1-")

    path = workspace.write("scene.py", b"class Alpha(Scene): pass\n")
    assert path.read_bytes() == b"class Alpha(Scene): pass\n"
    nested = workspace.write("media/videos/out.mp4", b"\x00")
    assert nested.exists()

    workspace.release()
    assert not workspace.root.exists()
    assert list(workspaces_root.iterdir()) == []
    assert not manager.is_live("job-1")


def test_release_is_idempotent_and_tolerates_missing_directory(workspaces_root):
    manager = WorkspaceManager(workspaces_root)
    workspace = manager.acquire("job-2")
    shutil.rmtree(workspace.root)

    workspace.release()
    workspace.release()

    assert workspace.released


def test_job_cannot_hold_two_live_workspaces(workspaces_root):
    manager = WorkspaceManager(workspaces_root)
    first = manager.acquire("job-3")

    with pytest.raises(WorkspaceInUseError):
        manager.acquire("job-3")

    first.release()
    second = manager.acquire("job-3")
    assert second.root != first.root
    second.release()


def test_context_manager_releases_on_error(workspaces_root):
    manager = WorkspaceManager(workspaces_root)

    with pytest.raises(RuntimeError):
        with manager.acquire("job-4") as workspace:
            workspace.write("scene.py", b"")
            raise RuntimeError("renderer blew up")

    assert not workspace.root.exists()
    assert not manager.is_live("job-4")


def test_rejects_paths_outside_the_workspace(workspaces_root):
    manager = WorkspaceManager(workspaces_root)
    with manager.acquire("job-5") as workspace:
        with pytest.raises(ValueError):
            workspace.write("../escape.py", b"")

    assert not (workspaces_root / "escape.py").exists()


@pytest.mark.parametrize("job_id", ["", "../etc", "a/b", "a\\b"])
def test_rejects_unsafe_job_ids(workspaces_root, job_id):
    with pytest.raises(ValueError):
        WorkspaceManager(workspaces_root).acquire(job_id)
