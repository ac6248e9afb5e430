import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from render_api.application import get_job_orchestrator
from render_api.config import Settings, get_settings
from render_api.core.logging import configure_logging
from render_api.infrastructure import SupabaseStorageClient, configure_storage_gateway
from render_api.routes import jobs, render

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if settings.storage_configured:
        client = SupabaseStorageClient(
            settings.supabase_url,
            settings.supabase_service_key,
            bucket=settings.supabase_bucket,
        )
        configure_storage_gateway(client)
    else:
        logger.warning("SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY not set, artifacts are kept in memory only")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        orchestrator = get_job_orchestrator(settings)
        orchestrator.start_sweeper(settings.sweep_interval_seconds)
        logger.info(
            "render API ready (renderer=%s, quality=%s, bucket=%s)",
            settings.renderer_mode,
            settings.render_quality,
            settings.supabase_bucket,
        )
        try:
            yield
        finally:
            await orchestrator.shutdown()

    app = FastAPI(title="Render API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    app.include_router(render.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Render API",
                "docs": "/docs",
                "health": "/health",
            }
        )

    return app


app = create_app()


def main() -> None:  # pragma: no cover - process entry point
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
