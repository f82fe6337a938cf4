"""
FastAPI application for the pixel sender.

Routes:
  POST /api/v1/pixel-runs/   run one batch (dedup -> pixel -> write-back)
  GET  /health               liveness
  GET  /health/detailed      liveness plus record store connectivity
"""
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
import os
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.orm import Session
from pixel_sender.api.deps import get_db
from pixel_sender.api.v1 import api_router
from pixel_sender.utils import setup_logging, get_logger
from pixel_sender.database import Base, engine
from pixel_sender.models.schemas.base import RejectedRun
import pixel_sender.models.db  # noqa: F401  (registers scraper_tokens on Base.metadata)

SERVICE_NAME = "pixel-sender"
SERVICE_VERSION = "1.0.0"

setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE") or None,
    enable_console=True,
    console_json=os.getenv("LOG_FORMAT", "text").lower() == "json",
)

logger = get_logger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _rejection(status_code: int, request: Request, message: str, details=None) -> JSONResponse:
    body = RejectedRun(message=message, details=details, request_id=_request_id(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # production databases already have scraper_tokens; creation is for local runs
    if _env_flag("PIXEL_SENDER_CREATE_TABLES", "true"):
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:  # pragma: no cover
            logger.error("Could not create record store tables", error=str(e), exc_info=True)
            raise
        logger.info("Record store tables ensured", tables=sorted(Base.metadata.tables))
    logger.info("Pixel sender started", version=SERVICE_VERSION)
    yield
    logger.info("Pixel sender stopped")


app = FastAPI(
    title="Pixel Sender",
    description="""
    Deduplicates affiliate conversion events against the scraper_tokens table
    and forwards new or changed conversions to the TrafficPoint pixel.

    ## Modes
    * **dry_run** - classify only, no sends and no writes
    * **skip_dedup** - bypass the lookup and treat every event as new
    * **include_payloads** - echo the pixel payloads for debugging
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Assign (or propagate) X-Request-ID and log the request with its timing."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    process_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(process_ms)
    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time_ms=process_ms,
        remote_addr=request.client.host if request.client else None,
        request_id=request_id,
    )
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request body (wrong types, bad options)."""
    logger.warning("Request validation failed", errors=exc.errors(), path=request.url.path, request_id=_request_id(request))
    return _rejection(422, request, "Request validation failed", {"errors": jsonable_encoder(exc.errors())})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail, path=request.url.path, request_id=_request_id(request))
    return _rejection(exc.status_code, request, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        request_id=_request_id(request),
        exc_info=True,
    )
    return _rejection(500, request, "Internal server error")


@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
    }


@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Adds a ``SELECT 1`` against the default record store database."""
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.warning("Record store health check failed", error=str(e))
        checks["database"] = f"unhealthy: {e}"
    return {
        "status": "healthy" if all(v == "healthy" for v in checks.values()) else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "checks": checks,
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Pixel Sender API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1",
    }


app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pixel_sender.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=_env_flag("RELOAD", "false"),
        log_level="info",
    )
