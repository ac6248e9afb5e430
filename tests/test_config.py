import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from render_api.config import get_settings


def test_reads_overrides_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("RENDER_WORKSPACES_ROOT", str(tmp_path / "ws"))
    monkeypatch.setenv("RENDERER_MODE", "Local")
    monkeypatch.setenv("MAX_CONCURRENT_RENDERS", " 3 ")
    monkeypatch.setenv("RENDER_TIMEOUT_SECONDS", "12.5")

    settings = get_settings()

    assert settings.workspaces_root == (tmp_path / "ws").resolve()
    assert settings.renderer_mode == "local"
    assert settings.max_concurrent_renders == 3
    assert settings.render_timeout_seconds == 12.5


@pytest.mark.parametrize("raw", ["2.5", "four", "1e3"])
def test_concurrency_must_be_a_whole_number(monkeypatch, raw):
    monkeypatch.setenv("MAX_CONCURRENT_RENDERS", raw)

    with pytest.raises(ValueError, match="MAX_CONCURRENT_RENDERS"):
        get_settings()


def test_rejects_unknown_renderer_mode(monkeypatch):
    monkeypatch.setenv("RENDERER_MODE", "kubernetes")

    with pytest.raises(ValueError, match="RENDERER_MODE"):
        get_settings()
