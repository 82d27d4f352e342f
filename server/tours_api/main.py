"""FastAPI application factory and entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import health, metrics, tour

SERVICE_NAME = "tours-api"

setup_structured_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Set up tracing and the schema on startup; release the engine on shutdown."""
    logger.info(
        "Starting Tours API",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    try:
        setup_tracing(SERVICE_NAME)
        setup_metrics(SERVICE_NAME)
        instrument_sqlalchemy(engine)
        await init_db()
    except Exception:
        logger.exception("Failed to initialize application")
        raise

    logger.info("Application startup complete")
    yield

    try:
        await close_db()
    except Exception:
        logger.exception("Error while closing database connections")
    logger.info("Application shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the centralized error responders."""
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


def register_routers(app: FastAPI) -> None:
    """Mount service endpoints at the root and the tours router under the API prefix."""
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(tour.router, prefix=settings.api_prefix)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Tours API",
        description="REST API for tours with filtering, sorting, field limiting, pagination and aggregation reports",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    register_exception_handlers(app)
    register_routers(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tours_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
