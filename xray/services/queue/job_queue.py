"""
Producer side of the ingestion queues.

``JobQueue`` validates a write event, wraps it in a job and hands it to the
broker of its queue. It never touches the store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from taskiq.exceptions import SendTaskError

from xray.exceptions import QueueUnavailableError, UnknownJobTypeError
from xray.settings import Settings
from xray.utils.logger import logger

from .broker import create_broker, create_test_broker
from .jobs import (
    ALL_QUEUES,
    JOB_QUEUES,
    RUNS_QUEUE,
    JobType,
    extract_routing_key,
    parse_job_type,
    validate_payload,
)
from .tasks import register_job_tasks

if TYPE_CHECKING:
    from taskiq import AsyncBroker

    from xray.utils.db_manager import DatabaseManager


class JobQueue:
    """Enqueues typed jobs on their routed queues.

    Args:
        brokers: Broker per queue name. Queues without their own broker use
            the first one given.
    """

    def __init__(self, brokers: dict[str, AsyncBroker]) -> None:
        if not brokers:
            raise ValueError("JobQueue needs at least one broker")
        self.brokers = brokers
        for broker in brokers.values():
            register_job_tasks(broker)

    @classmethod
    def from_settings(cls, settings: Settings, queues: list[str] | None = None) -> JobQueue:
        """Create one RabbitMQ broker per queue.

        Args:
            settings: Application settings.
            queues: Queue names, all ingestion queues by default.
        """
        return cls({name: create_broker(name, settings) for name in queues or ALL_QUEUES})

    @classmethod
    def in_memory(cls, db_manager: DatabaseManager | None = None) -> JobQueue:
        """Single in-memory broker executing jobs in-place (tests).

        Args:
            db_manager: Database manager the jobs are applied with.
        """
        broker = create_test_broker()
        if db_manager is not None:
            broker.state.db_manager = db_manager
        return cls({RUNS_QUEUE: broker})

    def broker_for(self, job_type: JobType) -> AsyncBroker:
        queue_name = JOB_QUEUES[job_type]
        return self.brokers.get(queue_name) or next(iter(self.brokers.values()))

    async def startup(self) -> None:
        for broker in self.brokers.values():
            await broker.startup()
        logger.info(f"Job queue connected: {list(self.brokers)}")

    async def shutdown(self) -> None:
        for broker in self.brokers.values():
            await broker.shutdown()
        logger.info("Job queue disconnected")

    async def enqueue(self, job_type: str | JobType, payload: BaseModel | dict[str, Any]) -> str:
        """Validate and publish a job.

        Args:
            job_type: Job type name.
            payload: Job payload, a model or a raw mapping.

        Returns:
            ID of the enqueued job.

        Raises:
            UnknownJobTypeError: For unknown job types.
            InvalidJobPayloadError: If the payload does not match its job type.
            QueueUnavailableError: If the broker cannot accept the job.
        """
        resolved = parse_job_type(job_type)
        job = validate_payload(resolved, payload)

        queue_name = JOB_QUEUES[resolved]
        task = self.broker_for(resolved).find_task(resolved.value)
        if task is None:
            raise UnknownJobTypeError(resolved.value)

        try:
            handle = await (
                task.kicker()
                .with_labels(routing_key=extract_routing_key(queue_name), job_type=resolved.value)
                .kiq(job.model_dump(mode="json"))
            )
        except (SendTaskError, ConnectionError, OSError) as e:
            logger.error(f"Failed to enqueue {resolved.value} job on {queue_name}: {e}")
            raise QueueUnavailableError(f"Job queue unavailable: {e}") from e

        logger.debug(f"Enqueued {resolved.value} job {handle.task_id} on {queue_name}")
        return handle.task_id
