"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .core.config import settings
from .core.database import Database
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    validation_exception_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_structured_logging,
    setup_tracing,
)
from .routers import availability, booking, followup, health, hold, membership, metrics, payment
from .schemas.health import ReadinessResponse
from .services.payment_gateway import CashfreeGateway
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Opens the database handle and gateway client, stores them on
    ``app.state`` for request handlers, and runs the background workers.
    """
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")

    try:
        setup_tracing(SERVICE_NAME)

        database = Database(settings.database_url)
        await database.create_all()
        instrument_sqlalchemy(database.engine)
        app.state.database = database
        logger.info("Database initialized successfully")

        app.state.payment_gateway = CashfreeGateway.from_settings(settings)

        workers = WorkerManager(database, settings)
        await workers.start_all()
        app.state.workers = workers
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down FastAPI application")

    try:
        await app.state.workers.stop_all()
        await app.state.payment_gateway.close()
        await app.state.database.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Court Booking API",
        description="RPC-over-HTTP API for hourly court reservations with slot holds, "
                    "gateway settlement, memberships and per-slot cancellation",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)

    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers queries",
        response_model=ReadinessResponse,
    )
    async def readiness_check(request: Request):
        """Readiness check: the service is ready once the database answers ``SELECT 1``."""
        database_check = "ok"
        database = getattr(request.app.state, "database", None)
        if database is None:
            database_check = "not initialized"
        else:
            try:
                async with database.engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except Exception as e:
                logger.warning(f"Readiness database check failed: {e}")
                database_check = "unavailable"

        ready = database_check == "ok"
        body = ReadinessResponse(
            status="ready" if ready else "degraded",
            service=SERVICE_NAME,
            checks={"database": database_check},
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )

    # Register API routers
    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(hold.router)
    app.include_router(payment.router)
    app.include_router(booking.router)
    app.include_router(membership.router)
    app.include_router(followup.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "courtbook.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
