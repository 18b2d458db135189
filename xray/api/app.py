"""
Main API application module for X-Ray.

This module creates and configures the FastAPI application with all routers
and middleware. Connection-owning objects (database manager, job queue) are
created by the lifespan and kept on ``app.state``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from xray.api.exception_handlers import setup_exception_handlers
from xray.api.routers import health, runs, steps
from xray.services.queue import JobQueue
from xray.settings import Settings, settings
from xray.utils.db_manager import DatabaseManager
from xray.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Creates the database manager and job queue unless they were injected,
    creates the tables and connects the queue.
    """
    config: Settings = app.state.settings
    owns_db = getattr(app.state, "db_manager", None) is None
    owns_queue = getattr(app.state, "job_queue", None) is None

    if owns_db:
        app.state.db_manager = DatabaseManager(config)
    if owns_queue:
        app.state.job_queue = JobQueue.from_settings(config)

    await app.state.db_manager.create_db_and_tables_async()
    logger.info("Database initialized with async support")

    await app.state.job_queue.startup()
    logger.info("Application startup complete")

    try:
        yield
    finally:
        await app.state.job_queue.shutdown()
        if owns_db:
            await app.state.db_manager.close()
        logger.info("Application shutdown")


# noinspection PyTypeChecker
def create_app(
    root_path: str = "/",
    config: Settings | None = None,
    db_manager: DatabaseManager | None = None,
    job_queue: JobQueue | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        root_path: The root path for the application
        config: Settings, defaults to the process settings
        db_manager: Pre-built database manager (tests)
        job_queue: Pre-built job queue (tests)

    Returns:
        Configured FastAPI application
    """
    config = config or settings
    app = FastAPI(
        title="X-Ray",
        description="Decision trail recording and cross-pipeline queries",
        version="0.1.0",
        debug=config.debug,
        lifespan=lifespan,
        root_path=root_path,
    )
    app.state.settings = config
    app.state.db_manager = db_manager
    app.state.job_queue = job_queue

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(runs.router, prefix="/runs")
    app.include_router(steps.router, prefix="/steps")
    app.include_router(health.router)

    return app


# Create default application instance
app = create_app(root_path=settings.root_url)
