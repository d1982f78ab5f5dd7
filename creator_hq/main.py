"""
Application entry point.

The app is built by `create_app`, which owns every client handle (database
engine, Redis, outbound HTTP) and closes them on shutdown. Serve with:

    uvicorn creator_hq.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from . import models  # noqa: F401 - registers tables on Base
from .config import Settings
from .database import Base, create_db_engine, create_session_factory
from .domain.analytics.router import router as analytics_router
from .domain.bookings.router import router as bookings_router
from .domain.calendar.router import router as calendar_router
from .domain.payments.router import router as payments_router
from .domain.payments.router import stripe_webhook
from .errors import register_exception_handlers
from .rate_limiter import create_redis_client
from .security_headers import SecurityHeadersMiddleware

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce verbosity of third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=app.state.engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    yield

    logger.info("Application shutting down...")
    await app.state.http_client.aclose()
    try:
        app.state.redis.close()
    except redis.RedisError as e:
        logger.warning(f"Error closing Redis connection: {e}")
    app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    redis_client: Optional[redis.Redis] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the application; any handle not supplied is constructed from settings"""
    settings = settings or Settings.from_env()
    configure_logging(settings)

    app = FastAPI(title="Creator HQ API", version="1.0.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine or create_db_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.redis = redis_client or create_redis_client(settings)
    app.state.http_client = http_client or httpx.AsyncClient(timeout=settings.outbound_timeout_seconds)

    register_exception_handlers(app)

    if settings.security_headers_enabled:
        app.add_middleware(
            SecurityHeadersMiddleware,
            frontend_origins=settings.allowed_origins,
            is_production=settings.is_production,
            exclude_paths=["/health", "/docs", "/openapi.json"],
        )
        logger.info("Security headers enabled")
    else:
        logger.warning("Security headers DISABLED - only use in development!")

    logger.info(f"CORS allowed origins: {settings.allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(bookings_router)
    app.include_router(calendar_router)
    app.include_router(payments_router)
    app.include_router(analytics_router)
    app.add_api_route(
        settings.payment_webhook_path,
        stripe_webhook,
        methods=["POST"],
        tags=["Payments"],
        name="stripe_webhook",
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/health/redis")
    async def redis_health_check(request: Request):
        """Ping the rate-limit backend"""
        try:
            request.app.state.redis.ping()
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "unhealthy", "redis": "unreachable"})
        return {"status": "healthy", "redis": "connected"}

    return app
