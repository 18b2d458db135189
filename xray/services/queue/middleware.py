"""
TaskIQ middlewares for job logging, admission rate limiting and the
dead letter queue.

JobLoggingMiddleware logs job lifecycle events.

AdmissionRateLimitMiddleware caps how many jobs a worker starts per second.

DeadLetterMiddleware routes permanently failed jobs to the dead letter queue.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from time import monotonic
from typing import TYPE_CHECKING, Any

import aio_pika
from taskiq import TaskiqMiddleware
from taskiq.exceptions import NoResultError

from xray.utils.logger import logger

from .jobs import DLQ_QUEUE

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractRobustConnection
    from taskiq import TaskiqMessage, TaskiqResult


class JobLoggingMiddleware(TaskiqMiddleware):
    """Logs job send/complete/fail events."""

    @staticmethod
    def _log_prefix(message: TaskiqMessage) -> str:
        job_type = message.labels.get("job_type", "")
        return f"[job={job_type}] " if job_type else ""

    async def pre_send(self, message: TaskiqMessage) -> TaskiqMessage:
        """Log before a job message is sent to the broker.

        Args:
            message: The outgoing job message.

        Returns:
            The message unchanged.
        """
        prefix = self._log_prefix(message)
        logger.debug(f"{prefix}Sending job '{message.task_name}' (id={message.task_id})")
        return message

    async def post_execute(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        """Log after job execution completes.

        Args:
            message: The executed job message.
            result: The job execution result.
        """
        prefix = self._log_prefix(message)

        if result.is_err:
            error = result.error
            if isinstance(error, NoResultError):
                logger.warning(
                    f"{prefix}Job '{message.task_name}' (id={message.task_id}) failed, "
                    f"retry scheduled"
                )
                return
            detail = getattr(error, "detail", None)
            detail_suffix = f" (detail: {detail})" if detail is not None else ""
            logger.error(
                f"{prefix}Job '{message.task_name}' (id={message.task_id}) "
                f"failed: {error}{detail_suffix}"
            )
        else:
            logger.info(
                f"{prefix}Job '{message.task_name}' (id={message.task_id}) "
                f"completed in {result.execution_time:.3f}s"
            )


@dataclass
class SlidingWindowLimiter:
    """Admits at most ``max_per_window`` events in any ``window`` seconds."""

    max_per_window: int
    window: float = 1.0
    _events: deque[float] = field(default_factory=deque)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def _evict(self, now: float) -> None:
        window_start = now - self.window
        while self._events and self._events[0] <= window_start:
            self._events.popleft()

    def allow(self) -> bool:
        if self.max_per_window <= 0:
            return True
        now = monotonic()
        self._evict(now)
        if len(self._events) >= self.max_per_window:
            return False
        self._events.append(now)
        return True

    async def acquire(self) -> None:
        """Wait until the window has room for one more event."""
        if self.max_per_window <= 0:
            return
        async with self._lock:
            while not self.allow():
                await asyncio.sleep(max(self._events[0] + self.window - monotonic(), 0.001))


class AdmissionRateLimitMiddleware(TaskiqMiddleware):
    """Delays job execution so a worker starts at most ``rate`` jobs per second.

    Args:
        rate: Jobs per second; 0 disables the limit.
        limiter: Limiter shared with the brokers of other queues, so the
            limit applies to the whole worker.
    """

    def __init__(self, rate: int, limiter: SlidingWindowLimiter | None = None) -> None:
        super().__init__()
        self.limiter = limiter or SlidingWindowLimiter(max_per_window=rate)

    async def pre_execute(self, message: TaskiqMessage) -> TaskiqMessage:
        await self.limiter.acquire()
        return message


class DeadLetterMiddleware(TaskiqMiddleware):
    """Routes permanently failed jobs to the dead letter queue.

    SmartRetryMiddleware sets result.error = NoResultError() when scheduling
    a retry. If post_execute sees a real error (not NoResultError), retries
    are exhausted or disabled and the job is dead-lettered.

    Args:
        amqp_url: AMQP URL of the broker.
        message_ttl: Seconds a dead letter is kept in the queue.
        max_length: Maximum number of dead letters kept.
    """

    def __init__(self, amqp_url: str, message_ttl: int, max_length: int) -> None:
        super().__init__()
        self._amqp_url = amqp_url
        self._queue_arguments: dict[str, Any] = {
            "x-message-ttl": message_ttl * 1000,
            "x-max-length": max_length,
        }
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None

    async def startup(self) -> None:
        """Open a persistent AMQP connection and declare the DLQ."""
        self._connection = await aio_pika.connect_robust(self._amqp_url)
        self._channel = await self._connection.channel()
        await self._channel.declare_queue(
            DLQ_QUEUE, durable=True, arguments=self._queue_arguments
        )

    async def shutdown(self) -> None:
        """Close the persistent AMQP connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None

    async def post_execute(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        """Check if a failed job should be routed to the DLQ.

        Args:
            message: The executed job message.
            result: The job execution result.
        """
        if not result.is_err:
            return

        if isinstance(result.error, NoResultError):
            return  # retry scheduled, skip DLQ

        await self._publish_to_dlq(message, result)

    async def _publish_to_dlq(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        """Publish a failed job to the xray.dead_letter queue.

        Args:
            message: The failed job message.
            result: The job execution result with error.
        """
        if self._channel is None:
            logger.error(
                f"DLQ channel not initialized, cannot route job '{message.task_name}' "
                f"(id={message.task_id}), was startup() called?"
            )
            return

        error = result.error
        dlq_payload: dict[str, Any] = {
            "job_type": message.labels.get("job_type", message.task_name),
            "task_id": message.task_id,
            "args": message.args,
            "kwargs": message.kwargs,
            "labels": message.labels,
            "error": str(error),
            "error_type": type(error).__name__ if error else None,
            "error_detail": getattr(error, "detail", None),
        }
        try:
            await self._channel.default_exchange.publish(
                aio_pika.Message(
                    body=json.dumps(dlq_payload, default=str).encode(),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=DLQ_QUEUE,
            )
        except Exception as e:
            logger.error(f"Failed to route job '{message.task_name}' to DLQ: {e}")
            return
        logger.warning(
            f"Job '{message.task_name}' (id={message.task_id}) "
            f"sent to dead letter queue: {error}"
        )
