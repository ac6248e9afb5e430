"""Spawn external programs and collect their output."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

logger = logging.getLogger(__name__)

# Negative return codes from asyncio mean "killed by signal N"; -256 never is.
SPAWN_FAILURE_EXIT_CODE = -256
KILLED_EXIT_CODE = -9
REAP_TIMEOUT_SECONDS = 5.0
READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class ProcessResult:
    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @property
    def spawn_failed(self) -> bool:
        return self.exit_code == SPAWN_FAILURE_EXIT_CODE

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class CommandRunner(Protocol):
    """Contract used by the render pipeline to launch the renderer."""

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult: ...


async def _pump(stream: asyncio.StreamReader, sink: bytearray) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        sink.extend(chunk)


async def _collect(process: asyncio.subprocess.Process, stdout: bytearray, stderr: bytearray) -> int:
    await asyncio.gather(_pump(process.stdout, stdout), _pump(process.stderr, stderr))
    return await process.wait()


class ProcessRunner:
    """Runs a command to completion and captures both output streams.

    A non-zero exit status is returned, not raised. When the program cannot be
    started at all the result carries ``SPAWN_FAILURE_EXIT_CODE`` and the OS
    error text in ``stderr``. Output is read as it is produced, so a child
    killed on ``timeout`` still reports everything it wrote before the kill
    (``timed_out`` is set on the result). Cancelling the caller also kills the
    child before the cancellation propagates.
    """

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
            )
        except OSError as exc:
            logger.error("failed to spawn %s: %s", command, exc)
            return ProcessResult(
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                stderr=f"Failed to start {command}: {exc}".encode("utf-8"),
            )

        stdout = bytearray()
        stderr = bytearray()
        completion = asyncio.ensure_future(_collect(process, stdout, stderr))
        timed_out = False
        try:
            await asyncio.wait_for(asyncio.shield(completion), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("killing %s (pid %s) after %ss", command, process.pid, timeout)
            await self._kill(process, completion)
        except asyncio.CancelledError:
            logger.warning("killing %s (pid %s) after cancellation", command, process.pid)
            await self._kill(process, completion)
            raise

        exit_code = process.returncode if process.returncode is not None else KILLED_EXIT_CODE
        return ProcessResult(exit_code=exit_code, stdout=bytes(stdout), stderr=bytes(stderr), timed_out=timed_out)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process, completion: asyncio.Future) -> None:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
        # Keep draining so the pipes close and the child is reaped.
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(completion, timeout=REAP_TIMEOUT_SECONDS)


__all__ = ["CommandRunner", "ProcessResult", "ProcessRunner", "SPAWN_FAILURE_EXIT_CODE"]
