"""
Studio Booking Engine - Main Application Entry Point

Scheduling core for a studio / personal-trainer platform:
- Availability resolution from weekly rules and date overrides
- Conflict-free booking creation with optimistic locking per trainer
- Booking lifecycle with compare-and-swap state transitions
- Idempotent credit settlement against a client ledger
- Background sweeper that reclaims expired soft-holds
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_engine.core.config import get_settings
from booking_engine.core.errors import SchedulingError
from booking_engine.core.logging import setup_logging, get_logger
from booking_engine.core.metrics import metrics_endpoint
from booking_engine.api.router import api_router
from booking_engine.api.middleware import RequestLoggingMiddleware
from booking_engine.services.cache_service import get_redis, close_redis, get_cache_stats
from booking_engine.services.notification_service import close_notifier
from booking_engine.services.sweeper import HoldExpirySweeper

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without slot cache")

    sweeper = None
    if settings.SWEEPER_ENABLED:
        sweeper = HoldExpirySweeper()
        sweeper.start()

    yield

    # Cleanup
    if sweeper:
        await sweeper.stop()
    await close_notifier()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Scheduling and booking engine for studios and personal trainers",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Every scheduling failure leaves as {"error": {kind, message, booking_id, context}}."""
    logger.info(
        "scheduling_error",
        kind=exc.kind,
        booking_id=exc.booking_id,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
