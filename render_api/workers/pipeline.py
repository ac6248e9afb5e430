from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from render_api.config import Settings
from render_api.core.artifacts import ARTIFACT_EXTENSION, candidate_directories, find_artifact
from render_api.core.process import CommandRunner, ProcessRunner
from render_api.core.scenes import detect_scene_name
from render_api.core.workspaces import WorkspaceManager
from render_api.domain import ErrorKind, RenderError, RenderOutcome, RenderSuccess

logger = logging.getLogger(__name__)

SOURCE_FILENAME = "scene.py"
MEDIA_DIRNAME = "media"
CONTAINER_MOUNT = "/manim"
CONTAINER_REMOVE_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class RendererCommand:
    """Builds the renderer invocation for one workspace."""

    mode: str = "docker"
    docker_binary: str = "docker"
    docker_image: str = "manimcommunity/manim:latest"
    manim_binary: str = "manim"
    quality: str = "ql"

    @classmethod
    def from_settings(cls, settings: Settings) -> "RendererCommand":
        return cls(
            mode=settings.renderer_mode,
            docker_binary=settings.docker_binary,
            docker_image=settings.docker_image,
            manim_binary=settings.manim_binary,
            quality=settings.render_quality,
        )

    @staticmethod
    def container_name(job_id: str) -> str:
        return f"render-{job_id}"

    def build(self, job_id: str, workspace_root: Path, scene_name: str) -> tuple[str, list[str]]:
        if self.mode == "docker":
            source = f"{CONTAINER_MOUNT}/{SOURCE_FILENAME}"
            media = f"{CONTAINER_MOUNT}/{MEDIA_DIRNAME}"
            render_args = self._render_args(source, scene_name, media)
            return self.docker_binary, [
                "run",
                "--rm",
                "--name",
                self.container_name(job_id),
                "-v",
                f"{workspace_root}:{CONTAINER_MOUNT}",
                self.docker_image,
                "manim",
                *render_args,
            ]
        source = str(workspace_root / SOURCE_FILENAME)
        media = str(workspace_root / MEDIA_DIRNAME)
        return self.manim_binary, self._render_args(source, scene_name, media)

    def _render_args(self, source: str, scene_name: str, media: str) -> list[str]:
        return [
            "render",
            source,
            scene_name,
            f"-{self.quality}",
            "--media_dir",
            media,
            "--format",
            "mp4",
        ]


class RenderPipeline:
    """Runs one render attempt: workspace, renderer subprocess, artifact lookup.

    ``render`` never raises for renderer problems; every failure comes back as
    a :class:`RenderError`. The workspace is released on every path, after the
    artifact bytes have been read.
    """

    def __init__(
        self,
        workspaces: WorkspaceManager,
        *,
        command: RendererCommand | None = None,
        runner: CommandRunner | None = None,
        timeout: float | None = 300.0,
    ) -> None:
        self._workspaces = workspaces
        self._command = command or RendererCommand()
        self._runner = runner or ProcessRunner()
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, *, runner: CommandRunner | None = None) -> "RenderPipeline":
        return cls(
            WorkspaceManager(settings.workspaces_root),
            command=RendererCommand.from_settings(settings),
            runner=runner,
            timeout=settings.render_timeout_seconds,
        )

    async def render(self, job_id: str, source_code: str) -> RenderOutcome:
        scene_name = detect_scene_name(source_code)
        logger.info("[%s] detected scene name: %s", job_id, scene_name)

        try:
            workspace = self._workspaces.acquire(job_id)
        except OSError as exc:
            logger.error("[%s] could not create workspace: %s", job_id, exc)
            return RenderError(
                kind=ErrorKind.WORKSPACE_FAILURE,
                message=f"Could not create workspace: {exc}",
                scene_name=scene_name,
            )

        try:
            try:
                workspace.write(SOURCE_FILENAME, source_code.encode("utf-8"))
            except OSError as exc:
                logger.error("[%s] could not write source: %s", job_id, exc)
                return RenderError(
                    kind=ErrorKind.WORKSPACE_FAILURE,
                    message=f"Could not write source file: {exc}",
                    scene_name=scene_name,
                )
            return await self._render_in(workspace.root, job_id, scene_name)
        finally:
            workspace.release()
            logger.info("[%s] workspace released", job_id)

    async def _render_in(self, root: Path, job_id: str, scene_name: str) -> RenderOutcome:
        command, args = self._command.build(job_id, root, scene_name)
        logger.info("[%s] running: %s %s", job_id, command, " ".join(args))

        result = await self._runner.run(command, args, cwd=root, timeout=self._timeout)
        stdout, stderr = result.stdout_text, result.stderr_text

        if result.timed_out:
            logger.error("[%s] renderer exceeded %ss, process killed", job_id, self._timeout)
            await self._remove_container(job_id)
            return RenderError(
                kind=ErrorKind.TIMEOUT,
                message=f"Render exceeded the {self._timeout:g}s time limit",
                scene_name=scene_name,
                stdout=stdout,
                stderr=stderr,
                exit_code=result.exit_code,
            )

        logger.info(
            "[%s] renderer exited with code %s (stdout %d chars, stderr %d chars)",
            job_id,
            result.exit_code,
            len(stdout),
            len(stderr),
        )

        if result.spawn_failed:
            return RenderError(
                kind=ErrorKind.PROCESS_SPAWN_FAILURE,
                message=f"Renderer could not be started: {stderr}",
                scene_name=scene_name,
                stdout=stdout,
                stderr=stderr,
                exit_code=result.exit_code,
            )

        if result.exit_code != 0:
            logger.error("[%s] render failed: %s", job_id, stderr)
            return RenderError(
                kind=ErrorKind.RENDER_FAILURE,
                message=f"Renderer exited with code {result.exit_code}",
                scene_name=scene_name,
                stdout=stdout,
                stderr=stderr,
                exit_code=result.exit_code,
            )

        # Output sub-directory is named after the source file's stem.
        module_name = Path(SOURCE_FILENAME).stem
        artifact_path = find_artifact(
            root / MEDIA_DIRNAME,
            scene_name,
            candidates=candidate_directories(module_name),
            extension=ARTIFACT_EXTENSION,
        )
        if artifact_path is None:
            logger.error("[%s] renderer reported success but no artifact was found", job_id)
            return RenderError(
                kind=ErrorKind.ARTIFACT_MISSING,
                message="Render succeeded but no video file was found in the output directory",
                scene_name=scene_name,
                stdout=stdout,
                stderr=stderr,
                exit_code=result.exit_code,
            )

        artifact = artifact_path.read_bytes()
        logger.info("[%s] artifact %s (%d bytes)", job_id, artifact_path.name, len(artifact))
        return RenderSuccess(artifact=artifact, scene_name=scene_name, stdout=stdout, stderr=stderr)

    async def _remove_container(self, job_id: str) -> None:
        if self._command.mode != "docker":
            return
        name = RendererCommand.container_name(job_id)
        result = await self._runner.run(
            self._command.docker_binary, ["rm", "-f", name], timeout=CONTAINER_REMOVE_TIMEOUT_SECONDS
        )
        if result.timed_out:
            logger.warning("[%s] timed out removing container %s", job_id, name)
            return
        if result.exit_code != 0:
            logger.warning("[%s] could not remove container %s: %s", job_id, name, result.stderr_text.strip())
