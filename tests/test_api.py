import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from render_api.application import JobOrchestrator, configure_job_orchestrator, reset_job_state
from render_api.config import Settings
from render_api.core.workspaces import WorkspaceManager
from render_api.infrastructure import InMemoryJobRepository, InMemoryStorageGateway
from render_api.workers.pipeline import RendererCommand, RenderPipeline

ALPHA_SOURCE = "from manim import *\n\nclass Alpha(Scene):\n    def construct(self):\n        self.wait()\n"


@pytest.fixture(autouse=True)
def reset_state():
    configure_job_orchestrator(None)
    yield
    reset_job_state()
    configure_job_orchestrator(None)


@pytest.fixture()
def storage():
    return InMemoryStorageGateway(base_url="https://cdn.example.test/videos")


@pytest.fixture()
def make_client(tmp_path, storage):
    clients = []

    def factory(runner):
        workspaces = tmp_path / "workspaces"
        settings = Settings(project_root=tmp_path, workspaces_root=workspaces, renderer_mode="local")
        pipeline = RenderPipeline(
            WorkspaceManager(workspaces),
            command=RendererCommand(mode="local"),
            runner=runner,
            timeout=5.0,
        )
        configure_job_orchestrator(JobOrchestrator(InMemoryJobRepository(), pipeline, storage))

        from render_api.app import create_app

        client = TestClient(create_app(settings))
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


def _poll(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/jobs/{job_id}").json()
        if body["status"] in {"succeeded", "failed"} or time.monotonic() > deadline:
            return body
        time.sleep(0.02)


def test_compile_then_fetch_video(make_client, fake_renderer_cls, storage):
    runner = fake_renderer_cls(
        stdout=b"File ready\n",
        outputs={"media/videos/scene/480p15/{scene}.mp4": b"alpha-video"},
    )
    client = make_client(runner)

    response = client.post("/api/compile", json={"code": ALPHA_SOURCE, "jobId": "alpha"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["jobId"] == "alpha"
    assert body["url"] == "https://cdn.example.test/videos/alpha.mp4"
    assert "File ready" in body["logs"]
    assert storage.keys() == ["alpha.mp4"]

    video = client.get("/api/video/alpha")
    assert video.status_code == 200
    assert video.headers["content-type"] == "video/mp4"
    assert video.headers["content-length"] == str(len(b"alpha-video"))
    assert video.content == b"alpha-video"


def test_compile_failure_reports_renderer_stderr(make_client, fake_renderer_cls, storage):
    stderr = b"Traceback (most recent call last):\nNameError: name 'Cirle' is not defined\n"
    client = make_client(fake_renderer_cls(exit_code=1, stderr=stderr))

    response = client.post("/api/compile", json={"code": ALPHA_SOURCE})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["errorKind"] == "render_failure"
    assert body["error"] == stderr.decode()
    assert body["errorDetails"]["statusCode"] == 1
    assert body["jobId"].startswith("job_")
    assert storage.keys() == []

    status = client.get(f"/api/jobs/{body['jobId']}").json()
    assert status["status"] == "failed"
    assert status["completedAt"] is not None


def test_compile_with_missing_artifact(make_client, fake_renderer_cls):
    client = make_client(fake_renderer_cls(stdout=b"done\n"))

    response = client.post("/api/compile", json={"code": ALPHA_SOURCE})

    assert response.status_code == 500
    assert response.json()["errorKind"] == "artifact_missing"


@pytest.mark.parametrize(
    "payload",
    [
        {"code": ""},
        {},
        {"code": ALPHA_SOURCE, "jobId": "../escape"},
        {"code": ALPHA_SOURCE, "jobId": "has space"},
    ],
)
def test_rejects_invalid_requests(make_client, fake_renderer_cls, payload):
    runner = fake_renderer_cls()
    client = make_client(runner)

    for path in ("/api/compile", "/api/jobs"):
        response = client.post(path, json=payload)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert body["details"]

    assert runner.calls == []
    assert client.get("/api/jobs").json()["items"] == []


def test_blank_code_is_rejected(make_client, fake_renderer_cls):
    client = make_client(fake_renderer_cls())

    response = client.post("/api/compile", json={"code": "   \n"})

    assert response.status_code == 400


def test_async_submission_and_polling(make_client, fake_renderer_cls):
    runner = fake_renderer_cls(
        delay=0.05,
        outputs={"media/videos/scene/480p15/{scene}.mp4": b"video"},
    )
    client = make_client(runner)

    accepted = client.post("/api/jobs", json={"code": ALPHA_SOURCE, "jobId": "poll-me"})

    assert accepted.status_code == 202
    assert accepted.json() == {"jobId": "poll-me", "status": "pending", "message": "Job accepted"}

    body = _poll(client, "poll-me")
    assert body["status"] == "succeeded"
    assert body["sceneName"] == "Alpha"
    assert body["url"].endswith("/poll-me.mp4")
    assert body["error"] is None
    assert body["startedAt"] is not None
    assert body["completedAt"] is not None


def test_duplicate_job_id_is_not_rendered_twice(make_client, fake_renderer_cls):
    runner = fake_renderer_cls(outputs={"media/videos/scene/480p15/{scene}.mp4": b"video"})
    client = make_client(runner)

    first = client.post("/api/jobs", json={"code": ALPHA_SOURCE, "jobId": "once"})
    assert first.status_code == 202
    assert _poll(client, "once")["status"] == "succeeded"

    second = client.post("/api/jobs", json={"code": ALPHA_SOURCE, "jobId": "once"})
    assert second.status_code == 200
    assert second.json()["message"] == "Job already exists"
    assert second.json()["status"] == "succeeded"

    again = client.post("/api/compile", json={"code": ALPHA_SOURCE, "jobId": "once"})
    assert again.status_code == 200
    assert len([call for call in runner.calls if "render" in call[1]]) == 1


def test_list_jobs_newest_first(make_client, fake_renderer_cls):
    client = make_client(fake_renderer_cls(outputs={"media/videos/scene/480p15/{scene}.mp4": b"video"}))

    for job_id in ("first", "second"):
        assert client.post("/api/compile", json={"code": ALPHA_SOURCE, "jobId": job_id}).status_code == 200

    items = client.get("/api/jobs").json()["items"]
    assert [item["jobId"] for item in items] == ["second", "first"]
    assert all(item["status"] == "succeeded" for item in items)


def test_unknown_job_and_video(make_client, fake_renderer_cls):
    client = make_client(fake_renderer_cls())

    assert client.get("/api/jobs/nope").status_code == 404
    missing = client.get("/api/video/nope")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Video not found"
    assert client.get("/api/video/bad..id").status_code == 400


def test_health(make_client, fake_renderer_cls):
    client = make_client(fake_renderer_cls())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_app_builds_its_orchestrator_from_the_given_settings(tmp_path):
    workspaces = tmp_path / "configured-workspaces"
    settings = Settings(
        project_root=tmp_path,
        workspaces_root=workspaces,
        renderer_mode="local",
        manim_binary=str(tmp_path / "missing-manim"),
        render_timeout_seconds=7.0,
        max_concurrent_renders=2,
    )

    from render_api.app import create_app

    with TestClient(create_app(settings)) as client:
        response = client.post("/api/compile", json={"code": ALPHA_SOURCE, "jobId": "configured"})

    assert response.status_code == 500
    body = response.json()
    assert body["errorKind"] == "process_spawn_failure"
    assert "missing-manim" in body["error"]
    assert workspaces.is_dir()
    assert list(workspaces.iterdir()) == []
