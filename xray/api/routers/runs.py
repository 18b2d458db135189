"""
Run router.

Write endpoints only validate and enqueue; the run becomes visible to the
read endpoints once a worker has applied the job.
"""

from fastapi import APIRouter, Query, status

from xray.api.dependencies import JobQueueDep, RunRepositoryDep
from xray.models import RunCreate, RunRead, RunStatus, RunUpdate, WriteAccepted
from xray.services.queue import JobType, UpdateRunJob

router = APIRouter(
    tags=["Runs"],
    responses={
        404: {"description": "Not found"},
        503: {"description": "Service temporarily unavailable"},
    },
)


@router.post("", response_model=WriteAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_run(run: RunCreate, job_queue: JobQueueDep) -> WriteAccepted:
    """Queue the creation of a run."""
    job_id = await job_queue.enqueue(JobType.CREATE_RUN, run)
    return WriteAccepted(job_id=job_id)


@router.post("/{run_id}", response_model=WriteAccepted, status_code=status.HTTP_202_ACCEPTED)
async def end_run(run_id: str, update: RunUpdate, job_queue: JobQueueDep) -> WriteAccepted:
    """Queue the end of a run (``ended_at`` and final status)."""
    job = UpdateRunJob(run_id=run_id, ended_at=update.ended_at, status=update.status)
    job_id = await job_queue.enqueue(JobType.UPDATE_RUN, job)
    return WriteAccepted(job_id=job_id)


@router.get("", response_model=list[RunRead])
async def list_runs(
    run_repo: RunRepositoryDep,
    pipeline: str | None = None,
    run_status: RunStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
) -> list[RunRead]:
    """List runs, most recently started first."""
    runs = await run_repo.list_runs(pipeline=pipeline, status=run_status, limit=limit)
    return [RunRead.model_validate(run) for run in runs]


@router.get("/{run_id}", response_model=RunRead)
async def get_run(run_id: str, run_repo: RunRepositoryDep) -> RunRead:
    """Get a run by ID."""
    return RunRead.model_validate(await run_repo.get(run_id))
