import asyncio
import sys
import time
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from render_api.core.process import SPAWN_FAILURE_EXIT_CODE, ProcessRunner


def _python(code: str) -> tuple[str, list[str]]:
    return sys.executable, ["-c", code]


def test_captures_output_and_nonzero_exit_without_raising():
    command, args = _python(
        "import sys; print('rendering'); print('Traceback: boom', file=sys.stderr); sys.exit(3)"
    )

    result = asyncio.run(ProcessRunner().run(command, args))

    assert result.exit_code == 3
    assert not result.spawn_failed
    assert result.stdout_text.strip() == "rendering"
    assert result.stderr_text.strip() == "Traceback: boom"


def test_drains_large_output_on_both_streams():
    size = 2 * 1024 * 1024
    command, args = _python(
        f"import sys; sys.stdout.write('o' * {size}); sys.stdout.flush(); sys.stderr.write('e' * {size})"
    )

    result = asyncio.run(ProcessRunner().run(command, args))

    assert result.exit_code == 0
    assert len(result.stdout) == size
    assert len(result.stderr) == size


def test_missing_binary_is_reported_as_spawn_failure(tmp_path):
    missing = str(tmp_path / "no-such-renderer")

    result = asyncio.run(ProcessRunner().run(missing, ["render"]))

    assert result.spawn_failed
    assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
    assert "no-such-renderer" in result.stderr_text


def test_runs_in_requested_directory(tmp_path):
    command, args = _python("import os; print(os.getcwd())")

    result = asyncio.run(ProcessRunner().run(command, args, cwd=tmp_path))

    assert Path(result.stdout_text.strip()).resolve() == tmp_path.resolve()


def test_cancellation_kills_the_child():
    command, args = _python("import time; time.sleep(30)")

    async def scenario() -> None:
        await asyncio.wait_for(ProcessRunner().run(command, args), timeout=0.5)

    started = time.monotonic()
    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(scenario())
    assert time.monotonic() - started < 15


def test_timeout_kills_the_child_and_keeps_partial_output():
    command, args = _python(
        "import sys, time\n"
        "print('frame 1', flush=True)\n"
        "print('still going', file=sys.stderr, flush=True)\n"
        "time.sleep(30)\n"
    )

    started = time.monotonic()
    result = asyncio.run(ProcessRunner().run(command, args, timeout=1.0))

    assert time.monotonic() - started < 15
    assert result.timed_out
    assert result.exit_code != 0
    assert result.stdout_text == "frame 1\n"
    assert result.stderr_text == "still going\n"


def test_finishing_within_timeout_is_a_normal_result():
    command, args = _python("print('quick')")

    result = asyncio.run(ProcessRunner().run(command, args, timeout=30))

    assert not result.timed_out
    assert result.exit_code == 0
    assert result.stdout_text.strip() == "quick"
