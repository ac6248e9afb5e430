from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from render_api.core.artifacts import QUALITY_FLAGS

RENDERER_MODES = ("docker", "local")
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class Settings:
    project_root: Path
    workspaces_root: Path
    renderer_mode: str = "docker"
    docker_binary: str = "docker"
    docker_image: str = "manimcommunity/manim:latest"
    manim_binary: str = "manim"
    render_quality: str = "ql"
    render_timeout_seconds: float = 300.0
    max_concurrent_renders: int = 4
    job_retention_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_bucket: str = "videos"
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.renderer_mode not in RENDERER_MODES:
            raise ValueError(f"RENDERER_MODE must be one of {', '.join(RENDERER_MODES)}")
        if self.render_quality not in QUALITY_FLAGS:
            raise ValueError(f"RENDER_QUALITY must be one of {', '.join(QUALITY_FLAGS)}")
        if self.render_timeout_seconds <= 0:
            raise ValueError("RENDER_TIMEOUT_SECONDS must be positive")
        if self.max_concurrent_renders < 1:
            raise ValueError("MAX_CONCURRENT_RENDERS must be at least 1")
        if self.job_retention_hours <= 0 or self.sweep_interval_seconds <= 0:
            raise ValueError("job retention and sweep interval must be positive")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown LOG_LEVEL: {self.log_level}")

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


def _number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _integer(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a whole number, got {raw!r}") from exc


def get_settings() -> Settings:
    load_dotenv()

    project_root = Path(__file__).resolve().parents[1]
    workspaces_root = Path(os.getenv("RENDER_WORKSPACES_ROOT") or project_root / "temp").expanduser().resolve()

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = tuple(origin.strip() for origin in origins_env.split(",") if origin.strip())

    return Settings(
        project_root=project_root,
        workspaces_root=workspaces_root,
        renderer_mode=os.getenv("RENDERER_MODE", "docker").strip().lower(),
        docker_binary=os.getenv("DOCKER_BINARY", "docker"),
        docker_image=os.getenv("MANIM_DOCKER_IMAGE") or "manimcommunity/manim:latest",
        manim_binary=os.getenv("MANIM_BINARY", "manim"),
        render_quality=os.getenv("RENDER_QUALITY", "ql").strip().lower(),
        render_timeout_seconds=_number("RENDER_TIMEOUT_SECONDS", 300.0),
        max_concurrent_renders=_integer("MAX_CONCURRENT_RENDERS", 4),
        job_retention_hours=_number("JOB_RETENTION_HOURS", 24.0),
        sweep_interval_seconds=_number("JOB_SWEEP_INTERVAL_SECONDS", 3600.0),
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY") or None,
        supabase_bucket=os.getenv("SUPABASE_BUCKET_NAME") or "videos",
        cors_origins=origins or DEFAULT_CORS_ORIGINS,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
