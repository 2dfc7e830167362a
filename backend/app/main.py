from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import health, leaves, schedules, sis, xr
from app.core.config import get_settings
from app.core.exceptions import AppError
from app.core.middleware import RequestSizeLimitMiddleware, RequestTimingMiddleware, SecurityHeadersMiddleware
from app.db.bootstrap import ensure_runtime_schema_compatibility

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema_compatibility()
    if settings.sis_sync_enabled and not (settings.sis_shared_secret and settings.sis_hrms_api_key):
        logger.warning("SIS sync is enabled but SIS_SHARED_SECRET or SIS_HRMS_API_KEY is empty; pushes will be skipped")
    if not settings.inbound_api_keys():
        logger.warning("No inbound API keys configured; all /xr requests will be rejected")
    yield


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)
app.add_middleware(RequestTimingMiddleware, slow_request_ms=settings.slow_request_ms)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(leaves.router, prefix=settings.api_prefix, tags=["leaves"])
app.include_router(sis.router, prefix=settings.api_prefix, tags=["sis"])
app.include_router(xr.router, prefix=settings.api_prefix, tags=["xr"])
