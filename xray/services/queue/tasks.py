"""
TaskIQ task handlers, one per job type.

Handlers are registered on a broker explicitly with ``register_job_tasks``
and receive the worker's ``DatabaseManager`` through the broker state.
"""

from typing import Any

from taskiq import AsyncBroker, Context, TaskiqDepends

from .jobs import JobType
from .processors import process_job


async def _process(
    context: Context, job_type: JobType, payload: dict[str, Any]
) -> dict[str, Any]:
    return await process_job(context.state.db_manager, job_type, payload)


async def create_run(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.CREATE_RUN, payload)


async def update_run(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.UPDATE_RUN, payload)


async def create_step(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.CREATE_STEP, payload)


async def update_step_summary(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.UPDATE_STEP_SUMMARY, payload)


async def create_candidate(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.CREATE_CANDIDATE, payload)


async def create_candidates_bulk(
    payload: dict[str, Any], context: Context = TaskiqDepends()
) -> dict[str, Any]:
    return await _process(context, JobType.CREATE_CANDIDATES_BULK, payload)


JOB_HANDLERS = {
    JobType.CREATE_RUN: create_run,
    JobType.UPDATE_RUN: update_run,
    JobType.CREATE_STEP: create_step,
    JobType.UPDATE_STEP_SUMMARY: update_step_summary,
    JobType.CREATE_CANDIDATE: create_candidate,
    JobType.CREATE_CANDIDATES_BULK: create_candidates_bulk,
}


def register_job_tasks(broker: AsyncBroker) -> AsyncBroker:
    """Register every job handler on ``broker`` under its job type name.

    Args:
        broker: Broker to register on.

    Returns:
        The same broker.
    """
    for job_type, handler in JOB_HANDLERS.items():
        if broker.find_task(job_type.value) is None:
            broker.register_task(handler, task_name=job_type.value)
    return broker
