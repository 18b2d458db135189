"""Health check router."""

from fastapi import APIRouter

from xray.api.dependencies import DatabaseManagerDep
from xray.models import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthStatus)
async def health(db_manager: DatabaseManagerDep) -> HealthStatus:
    """Report store connectivity; an unreachable store yields 503."""
    await db_manager.ping()
    return HealthStatus(status="ok", database="ok")
