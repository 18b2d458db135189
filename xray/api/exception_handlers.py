"""
Exception handlers for converting domain exceptions to HTTP responses.

This module maps domain exceptions to appropriate HTTP status codes
and response formats for the API layer using FastAPI decorators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from xray.utils.db_manager import is_connection_error
from xray.utils.logger import logger

if TYPE_CHECKING:
    from fastapi import FastAPI

SERVICE_UNAVAILABLE_DETAIL = "Service temporarily unavailable"


def _service_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": SERVICE_UNAVAILABLE_DETAIL},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup exception handlers using decorators.

    This function registers exception handlers for domain exceptions,
    converting them to appropriate HTTP responses.

    Args:
        app: FastAPI application instance
    """
    from xray.exceptions.domain import (
        DatabaseConnectionError,
        DatabaseError,
        EntityNotFoundError,
        InvalidJobPayloadError,
        QueueUnavailableError,
        UnknownJobTypeError,
    )

    @app.exception_handler(EntityNotFoundError)
    async def handle_entity_not_found(_: Request, exc: EntityNotFoundError) -> JSONResponse:
        """Convert EntityNotFoundError to 404 response."""
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc) if str(exc) else "Resource not found"},
        )

    @app.exception_handler(InvalidJobPayloadError)
    async def handle_invalid_job_payload(_: Request, exc: InvalidJobPayloadError) -> JSONResponse:
        """Convert InvalidJobPayloadError to 422 response."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.detail},
        )

    @app.exception_handler(UnknownJobTypeError)
    async def handle_unknown_job_type(_: Request, exc: UnknownJobTypeError) -> JSONResponse:
        """Convert UnknownJobTypeError to 400 response."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(QueueUnavailableError)
    async def handle_queue_unavailable(_: Request, exc: QueueUnavailableError) -> JSONResponse:
        """Convert QueueUnavailableError to 503 response."""
        logger.error(f"Rejecting write, {exc}")
        return _service_unavailable()

    @app.exception_handler(DatabaseConnectionError)
    async def handle_database_connection(
        _: Request, exc: DatabaseConnectionError
    ) -> JSONResponse:
        """Convert DatabaseConnectionError to 503 response."""
        logger.error(f"Store unreachable: {exc}")
        return _service_unavailable()

    @app.exception_handler(DatabaseError)
    async def handle_database_error(_: Request, _exc: DatabaseError) -> JSONResponse:
        """Convert DatabaseError to 500 response."""
        # Don't expose internal database errors to clients
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Database operation failed"},
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_sqlalchemy_error(_: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Convert connection-level SQLAlchemy errors to 503, anything else to 500."""
        if is_connection_error(exc):
            logger.error(f"Store unreachable: {exc}")
            return _service_unavailable()
        logger.error(f"Database error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Database operation failed"},
        )

    @app.exception_handler(OSError)
    async def handle_os_error(_: Request, exc: OSError) -> JSONResponse:
        """Convert driver level connection failures (refused, reset, DNS) to 503."""
        logger.error(f"Store unreachable: {exc}")
        return _service_unavailable()
