"""
Common dependencies for X-Ray API endpoints.

Everything a request needs (session, repositories, query engine, job queue)
is resolved from objects the application lifespan put on ``app.state``.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..repositories import CandidateRepository, RunRepository, StepRepository
from ..services.query_engine import CrossPipelineQueryEngine
from ..services.queue import JobQueue
from ..utils.database import get_async_session, get_db_manager
from ..utils.db_manager import DatabaseManager

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


def get_job_queue(request: Request) -> JobQueue:
    """Return the job queue attached to the running application."""
    return request.app.state.job_queue


async def get_run_repository(session: SessionDep) -> RunRepository:
    return RunRepository(session)


async def get_step_repository(session: SessionDep) -> StepRepository:
    return StepRepository(session)


async def get_candidate_repository(session: SessionDep) -> CandidateRepository:
    return CandidateRepository(session)


async def get_query_engine(session: SessionDep) -> CrossPipelineQueryEngine:
    return CrossPipelineQueryEngine(session)


JobQueueDep = Annotated[JobQueue, Depends(get_job_queue)]
DatabaseManagerDep = Annotated[DatabaseManager, Depends(get_db_manager)]
RunRepositoryDep = Annotated[RunRepository, Depends(get_run_repository)]
StepRepositoryDep = Annotated[StepRepository, Depends(get_step_repository)]
CandidateRepositoryDep = Annotated[CandidateRepository, Depends(get_candidate_repository)]
QueryEngineDep = Annotated[CrossPipelineQueryEngine, Depends(get_query_engine)]
