"""
Main FastAPI application
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
import redis.asyncio as redis

from seatkeeper.config import settings
from seatkeeper.core.database import init_db, close_db, async_session
from seatkeeper.core.exceptions import SeatkeeperException
from seatkeeper.core.logging import setup_logging
from seatkeeper.core.metrics import REQUEST_COUNT, REQUEST_DURATION
from seatkeeper.core.redis import init_redis, close_redis
from seatkeeper.api.v1.api import api_router
from seatkeeper.services.availability_projector import AvailabilityProjector
from seatkeeper.services.availability_store import AvailabilityStore, SqlAvailabilityStore
from seatkeeper.services.booking_bridge import BookingSink, LoggingBookingSink, RedisBookingPublisher
from seatkeeper.services.catalog_service import SeatCatalog
from seatkeeper.services.compaction import CompactionWorker
from seatkeeper.services.redis_store import RedisAvailabilityStore
from seatkeeper.services.reservation_engine import ReservationEngine

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


def build_store(redis_client: Optional[redis.Redis]) -> AvailabilityStore:
    if settings.AVAILABILITY_BACKEND == "redis":
        return RedisAvailabilityStore(redis_client)
    return SqlAvailabilityStore(async_session)


def build_booking_sink(redis_client: Optional[redis.Redis]) -> BookingSink:
    if settings.BOOKING_SINK == "redis":
        return RedisBookingPublisher(redis_client, settings.BOOKING_CHANNEL)
    return LoggingBookingSink()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.AVAILABILITY_BACKEND} store)")

    await init_db()
    logger.info("Database connection established")

    redis_client = None
    if settings.AVAILABILITY_BACKEND == "redis" or settings.BOOKING_SINK == "redis":
        redis_client = await init_redis()

    catalog = SeatCatalog(async_session)
    reservation_engine = ReservationEngine(
        build_store(redis_client),
        catalog,
        booking_sink=build_booking_sink(redis_client),
    )
    app.state.session_factory = async_session
    app.state.redis_client = redis_client
    app.state.reservation_engine = reservation_engine
    app.state.projector = AvailabilityProjector(reservation_engine, catalog)

    compaction_worker = None
    if settings.COMPACTION_ENABLED:
        compaction_worker = CompactionWorker(reservation_engine, settings.COMPACTION_INTERVAL_SECONDS)
        compaction_worker.start()

    yield

    # Shutdown
    logger.info("Shutting down application")

    if compaction_worker:
        await compaction_worker.stop()

    await close_db()

    if redis_client:
        await close_redis()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Seat availability and reservation service",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request tracking middleware
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """
    Track request metrics and add request ID
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Label by route template so per-event paths don't explode cardinality
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()

    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(duration)

    return response


# Exception handlers
def error_response(status_code: int, code: str, message: str, details: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details or {}
            }
        }
    )


@app.exception_handler(SeatkeeperException)
async def seatkeeper_exception_handler(request: Request, exc: SeatkeeperException):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(
        400,
        "VALIDATION_ERROR",
        "Request body or parameters are invalid",
        {"errors": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    return error_response(404, "NOT_FOUND", "The requested resource was not found")


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    logger.error(f"Internal server error: {exc}", exc_info=True)
    return error_response(500, "INTERNAL_ERROR", "An internal server error occurred")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.APP_ENV,
        "backend": settings.AVAILABILITY_BACKEND,
        "api_docs": "/docs" if settings.DEBUG else None
    }


# Include routers
app.include_router(api_router, prefix=settings.API_PREFIX)

# Mount Prometheus metrics endpoint
if settings.PROMETHEUS_ENABLED:
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "seatkeeper.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
