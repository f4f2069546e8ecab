from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from tournament_ingest.api.router import api_router
from tournament_ingest.core.config import get_settings
from tournament_ingest.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from tournament_ingest.services.repository import get_repository

settings = get_settings()
logger = logging.getLogger(__name__)
_telemetry_runtime = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_telemetry(_telemetry_runtime)
        await get_repository().close()
        get_repository.cache_clear()


configure_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_telemetry(settings, service_suffix="api", app=app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started_at) * 1000.0,
    )
    return response


app.include_router(api_router)
