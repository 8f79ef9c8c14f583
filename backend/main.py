"""
APImetrics Backend
==================
FastAPI application entry point.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from backend import __version__
from backend.api import api_router
from backend.api.deps import get_dispatcher
from backend.config import settings
from backend.database import close_db, init_db
from backend.jobs.scheduler import JobScheduler

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    logger.info("Starting APImetrics", env=settings.app_env, version=__version__)
    await init_db()
    logger.info("Database connected")

    scheduler: JobScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = JobScheduler()
        scheduler.setup()
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down APImetrics")
    if scheduler is not None:
        await scheduler.stop()
    await get_dispatcher().sender.aclose()
    await close_db()
    logger.info("Database disconnected")


# Create FastAPI application
app = FastAPI(
    title="APImetrics API",
    description="Usage telemetry, daily cost stats and threshold alerts for LLM API calls",
    version=__version__,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount Prometheus metrics endpoint
if settings.metrics_enabled:
    app.mount("/metrics", make_asgi_app())

# Include API routes
app.include_router(api_router)


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "backend.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
