"""
Worker pool startup.

A worker consumes one or more ingestion queues, runs up to ``concurrency``
jobs at a time per queue and acknowledges a job only after it was
executed, so a crash mid-job leads to redelivery.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from taskiq.acks import AcknowledgeType
from taskiq.api.receiver import run_receiver_task

from xray.settings import Settings
from xray.utils.db_manager import DatabaseManager
from xray.utils.logger import configure_logging, logger

from .queue.broker import create_broker
from .queue.jobs import ALL_QUEUES
from .queue.middleware import SlidingWindowLimiter
from .queue.tasks import register_job_tasks

if TYPE_CHECKING:
    from taskiq import AsyncBroker

_ACK_TYPE_MAP = {
    "when_received": AcknowledgeType.WHEN_RECEIVED,
    "when_executed": AcknowledgeType.WHEN_EXECUTED,
    "when_saved": AcknowledgeType.WHEN_SAVED,
}


def create_worker_broker(
    queue_name: str,
    settings: Settings,
    db_manager: DatabaseManager,
    limiter: SlidingWindowLimiter | None = None,
) -> AsyncBroker:
    """Create a broker for ``queue_name`` with job handlers registered.

    Args:
        queue_name: Queue to consume.
        settings: Application settings.
        db_manager: Database manager handed to every job through the broker state.
        limiter: Admission limiter shared with the other queues of the worker.

    Returns:
        Broker ready to be started in a worker process.
    """
    broker = register_job_tasks(create_broker(queue_name, settings, limiter))
    broker.is_worker_process = True
    broker.state.db_manager = db_manager
    return broker


async def run_worker(
    settings: Settings,
    queues: list[str] | None = None,
    concurrency: int | None = None,
) -> None:
    """Start a TaskIQ worker for the given queues and block until signalled.

    Args:
        settings: Application settings.
        queues: Queue names to listen on (all ingestion queues if None).
        concurrency: Jobs processed at once per queue.
    """
    queues = queues or list(ALL_QUEUES)
    concurrency = concurrency or settings.worker_concurrency
    configure_logging(settings, component="worker")
    ack_type = _ACK_TYPE_MAP.get(settings.queue_ack_type, AcknowledgeType.WHEN_EXECUTED)

    logger.info(f"Starting worker on queues: {queues} (concurrency={concurrency})")

    db_manager = DatabaseManager(settings)
    await db_manager.create_db_and_tables_async()

    limiter = SlidingWindowLimiter(max_per_window=settings.worker_rate_limit)
    brokers = [
        create_worker_broker(queue_name, settings, db_manager, limiter) for queue_name in queues
    ]

    receiver_tasks: list[asyncio.Task[None]] = []
    for broker in brokers:
        await broker.startup()
        receiver_tasks.append(
            asyncio.create_task(
                run_receiver_task(
                    broker,
                    max_async_tasks=concurrency,
                    run_startup=False,
                    ack_time=ack_type,
                )
            )
        )

    logger.info(f"Worker started, listening on {len(brokers)} queue(s)")
    logger.info(f"Registered jobs: {list(brokers[0].get_all_tasks().keys())}")

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await shutdown_event.wait()
    finally:
        for receiver_task in receiver_tasks:
            receiver_task.cancel()
        for broker in brokers:
            await broker.shutdown()
        await db_manager.close()
        logger.info("Worker stopped")
