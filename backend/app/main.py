import asyncio
import logging
import os
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as SA_TimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401  registers tables on Base.metadata
from .api import api_message, api_threads, api_ws
from .core.config import settings
from .core.observability import setup_logging, setup_tracer
from .database import Base, engine
from .realtime import bus
from .realtime.feed import message_feed
from .services import redis_client
from .services.errors import MessagingError
from .utils import error_response

setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Always use ORJSONResponse for JSON payloads to ensure consistent, fast
# serialization across all endpoints.
app = FastAPI(title="Booking Messaging API", default_response_class=ORJSONResponse)
setup_tracer(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for HTTP errors and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:  # return the original status and detail
        logger.error(
            "HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail
        )
        response = ORJSONResponse(
            status_code=exc.status_code, content={"detail": exc.detail}
        )
    except SA_TimeoutError as exc:  # DB pool timeout -> 503 to reduce retry storms
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        response = ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database busy, please retry"},
        )
    except Exception as exc:
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )
    return response


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, exc: MessagingError):
    """Render domain errors with the shared ``message``/``field_errors`` detail."""
    http_exc = error_response(exc.message, exc.field_errors, exc.status_code)
    return ORJSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors with details and log them for debugging."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors = {
        ".".join(str(p) for p in err.get("loc", ())[1:]) or "body": err.get("msg", "invalid")
        for err in errors
    }
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {"message": "Invalid request", "field_errors": field_errors}},
    )


@app.get("/healthz/live", tags=["health"])
async def health_live():
    """Liveness probe: process can respond; does not touch the DB."""
    return {
        "status": "ok",
        "kind": "live",
        "uptime_s": round(time.time() - _BOOT_TS, 1),
        "pid": os.getpid(),
    }


@app.get("/healthz/ready", tags=["health"])
def health_ready():
    """Readiness probe: one ``SELECT 1`` against the store."""
    t0 = time.perf_counter()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Readiness DB ping failed: %s", exc)
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "kind": "ready", "error": str(exc)},
            headers={"Cache-Control": "no-store"},
        )
    return ORJSONResponse(
        content={
            "status": "ok",
            "kind": "ready",
            "db_ping_ms": round((time.perf_counter() - t0) * 1000.0, 2),
        },
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_V1_STR  # usually something like "/api/v1"

app.include_router(api_threads.router, prefix=f"{api_prefix}", tags=["threads"])
app.include_router(api_message.router, prefix=f"{api_prefix}", tags=["messages"])
app.include_router(api_ws.router, prefix=f"{api_prefix}", tags=["ws"])


@app.on_event("startup")
def create_tables() -> None:
    """Create the messaging tables for local development and tests."""
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)


@app.on_event("startup")
async def start_realtime_bus() -> None:
    """Bind the live feed to the server loop and mirror other instances when the bus is enabled."""
    message_feed.bind_loop(asyncio.get_running_loop())
    if bus.bus_enabled():
        await message_feed.start_bus_consumer()


@app.on_event("shutdown")
async def stop_realtime_bus() -> None:
    message_feed.bind_loop(None)
    if not bus.bus_enabled():
        return
    logger.info("Closing Redis client")
    await bus.stop_consumer()
    await redis_client.redis.aclose()


@app.get("/")
async def root():
    return {"message": "Welcome to the Booking Messaging API"}
