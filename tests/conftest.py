from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Mapping, Sequence

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from render_api.core.process import ProcessResult


class FakeRenderer:
    """Stands in for the renderer binary.

    ``outputs`` maps paths relative to the workspace to file contents; a
    ``{scene}`` placeholder is replaced by the scene name passed on the
    command line.
    """

    def __init__(
        self,
        *,
        exit_code: int = 0,
        stdout: bytes = b"",
        stderr: bytes = b"",
        outputs: Mapping[str, bytes] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.outputs = dict(outputs or {})
        self.delay = delay
        self.calls: list[tuple[str, list[str], Path | None]] = []
        self.sources_seen: list[str | None] = []

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        args = list(args)
        self.calls.append((command, args, cwd))
        if "render" not in args:
            return ProcessResult(exit_code=0)

        source = cwd / "scene.py" if cwd is not None else None
        self.sources_seen.append(source.read_text(encoding="utf-8") if source and source.exists() else None)

        if timeout is not None and self.delay > timeout:
            # Killed mid-render: whatever was printed so far is all there is.
            await asyncio.sleep(timeout)
            return ProcessResult(exit_code=-9, stdout=self.stdout, stderr=self.stderr, timed_out=True)
        if self.delay:
            await asyncio.sleep(self.delay)

        scene = args[args.index("render") + 2]
        if cwd is not None:
            for relative, data in self.outputs.items():
                target = cwd / relative.format(scene=scene)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
        return ProcessResult(exit_code=self.exit_code, stdout=self.stdout, stderr=self.stderr)


@pytest.fixture()
def fake_renderer_cls():
    return FakeRenderer


@pytest.fixture()
def workspaces_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root
