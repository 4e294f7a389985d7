from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from app.core.limits import limiter, rate_limit_handler
from app.core.init_db import init_database
from app.core.error_handlers import setup_exception_handlers
from app.core.database import db_manager
from app.core.exceptions import DatabaseConnectionError, DatabaseTimeoutError
from app.core.middleware import setup_middleware
from app.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from app.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    BOOKING_SWEEP_ENABLED,
    CORS_ORIGINS,
    DEBUG,
    LOG_LEVEL,
    LOG_FORMAT,
)

from app.audit.routers import admin_audit
from app.bookings.routers import admin as admin_bookings
from app.bookings.routers import bookings
from app.bookings.routers import student as student_bookings
from app.bookings.routers import watchman as watchman_bookings
from app.bookings.services.timeout_sweeper import BookingTimeoutSweeper
from app.locations.routers import admin_locations
from app.users.routers import admin_users
from app.users.routers import auth
from app.users.routers import users

# Настройка системы логирования
setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)

timeout_sweeper = BookingTimeoutSweeper()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""

    # Startup
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

    try:
        validate_config()
        logger.info("✅ Configuration validated")

        await init_database()
        logger.info("✅ Database initialized")

        if BOOKING_SWEEP_ENABLED:
            timeout_sweeper.start()
        else:
            logger.info("Booking timeout sweeper disabled")

        log_business_event(
            "application_started",
            "system",
            None,
            {
                "version": APP_VERSION,
                "environment": "development" if DEBUG else "production",
                "timeout_sweeper": BOOKING_SWEEP_ENABLED,
            },
        )

        logger.info("🚀 Application startup completed")

    except Exception as e:
        logger.error(f"❌ Application startup failed: {str(e)}")
        error_tracker.track_error(
            "STARTUP_ERROR",
            str(e),
            {"component": "application_startup", "version": APP_VERSION},
        )
        raise

    yield

    # Shutdown
    logger.info("🛑 Shutting down application...")

    try:
        timeout_sweeper.stop()
        await db_manager.close_connections()
        logger.info("✅ Database connections closed")

    except Exception as e:
        logger.error(f"❌ Error during shutdown: {str(e)}")

    logger.info("👋 Application shutdown completed")


app = FastAPI(
    title=APP_NAME,
    description="Campus vehicle booking portal",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

setup_middleware(
    app,
    {
        "slow_request_threshold": 5.0,
        "exclude_paths": [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc",
            "/favicon.ico",
        ],
    },
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


@app.get("/health", tags=["System"])
async def health():
    """Liveness plus database reachability"""
    try:
        await db_manager.check_connection()
        database = "ok"
    except (DatabaseConnectionError, DatabaseTimeoutError):
        database = "unavailable"

    body = {
        "status": "ok" if database == "ok" else "degraded",
        "version": APP_VERSION,
        "database": database,
        "timeout_sweeper": "running" if timeout_sweeper.running else "stopped",
        "errors": error_tracker.get_stats()["total_errors"],
    }
    return JSONResponse(status_code=200 if database == "ok" else 503, content=body)


# Include routers with API version prefix
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(student_bookings.router, prefix="/api/v1")
app.include_router(watchman_bookings.router, prefix="/api/v1")
app.include_router(admin_bookings.router, prefix="/api/v1")
app.include_router(admin_locations.router, prefix="/api/v1")
app.include_router(admin_users.router, prefix="/api/v1")
app.include_router(admin_audit.router, prefix="/api/v1")
app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
