"""
Ingestion queue built on TaskIQ and RabbitMQ.

Write events become typed jobs routed to ``xray.runs``, ``xray.steps`` or
``xray.candidates``; workers apply them through the trace writer.

Example:
    from xray.services.queue import JobQueue, JobType

    job_queue = JobQueue.from_settings(settings)
    await job_queue.startup()
    job_id = await job_queue.enqueue(JobType.CREATE_RUN, run_payload)
"""

from .broker import create_broker, create_test_broker
from .job_queue import JobQueue
from .jobs import (
    ALL_QUEUES,
    CANDIDATES_QUEUE,
    DLQ_QUEUE,
    RUNS_QUEUE,
    STEPS_QUEUE,
    CreateCandidateJob,
    CreateCandidatesBulkJob,
    JobType,
    UpdateRunJob,
    UpdateStepSummaryJob,
    extract_routing_key,
)
from .middleware import (
    AdmissionRateLimitMiddleware,
    DeadLetterMiddleware,
    JobLoggingMiddleware,
    SlidingWindowLimiter,
)
from .processors import process_job
from .tasks import register_job_tasks

__all__ = [
    "ALL_QUEUES",
    "CANDIDATES_QUEUE",
    "DLQ_QUEUE",
    "RUNS_QUEUE",
    "STEPS_QUEUE",
    "AdmissionRateLimitMiddleware",
    "CreateCandidateJob",
    "CreateCandidatesBulkJob",
    "DeadLetterMiddleware",
    "JobLoggingMiddleware",
    "JobQueue",
    "JobType",
    "SlidingWindowLimiter",
    "UpdateRunJob",
    "UpdateStepSummaryJob",
    "create_broker",
    "create_test_broker",
    "extract_routing_key",
    "process_job",
    "register_job_tasks",
]
