from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from . import __version__
from .api.routes import router as api_router
from .core.config import get_settings
from .core.logging import configure_logging, get_logger
from .dependencies import reset_singletons

settings = get_settings()
configure_logging(settings.observability.log_level, json_logs=settings.observability.json_logs)
logger = get_logger(name=__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    timeout = httpx.Timeout(settings.runtime.llm_timeout_seconds + 5.0)
    async with httpx.AsyncClient(timeout=timeout) as client:
        app.state.http_client = client
        logger.info("app_started", environment=settings.environment, provider=settings.llm.provider)
        try:
            yield
        finally:
            app.state.http_client = None
            reset_singletons()
            logger.info("app_stopped")


app = FastAPI(title=settings.app_name, version=__version__, lifespan=app_lifespan)
if settings.frontend_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": f"{settings.app_name} running"}


if settings.observability.prometheus_enabled:

    @app.get("/metrics", tags=["observability"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
