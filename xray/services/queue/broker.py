"""
TaskIQ broker configuration for the ingestion queues.

One AioPikaBroker per queue, all bound to the same direct exchange, with
SmartRetryMiddleware for exponential backoff and a dead letter queue for
jobs that exhaust their retries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskiq import InMemoryBroker
from taskiq.middlewares import SmartRetryMiddleware
from taskiq_aio_pika import AioPikaBroker
from taskiq_redis import RedisAsyncResultBackend

from xray.settings import Settings, settings
from xray.utils.logger import logger

from .jobs import RUNS_QUEUE, extract_routing_key
from .middleware import (
    AdmissionRateLimitMiddleware,
    DeadLetterMiddleware,
    JobLoggingMiddleware,
    SlidingWindowLimiter,
)

if TYPE_CHECKING:
    from taskiq import AsyncBroker


def create_broker(
    queue_name: str = RUNS_QUEUE,
    config: Settings | None = None,
    limiter: SlidingWindowLimiter | None = None,
) -> AsyncBroker:
    """Create a TaskIQ broker for a specific queue.

    All brokers share the ``xray`` direct exchange. Each queue binds to a
    routing key matching its suffix (e.g. ``xray.steps`` binds to ``steps``).

    Args:
        queue_name: Queue name to bind (default: ``xray.runs``).
        config: Settings to use, defaults to the process settings.
        limiter: Admission limiter shared by all brokers of a worker.

    Returns:
        Configured AioPikaBroker instance.
    """
    config = config or settings
    routing_key = extract_routing_key(queue_name)

    broker_kwargs: dict[str, object] = {
        "url": config.amqp_url,
        "exchange_name": config.rabbitmq_exchange,
        "exchange_type": "direct",
        "queue_name": queue_name,
        "routing_key": routing_key,
        "declare_exchange": True,
        "declare_queues": True,
    }

    broker = AioPikaBroker(**broker_kwargs)  # type: ignore[arg-type]

    broker = broker.with_middlewares(
        SmartRetryMiddleware(
            default_retry_count=config.queue_retry_count,
            default_retry_label=True,
            default_delay=config.queue_retry_delay,
            use_jitter=True,
            use_delay_exponent=True,
            max_delay_exponent=config.queue_retry_max_delay,
        ),
        AdmissionRateLimitMiddleware(config.worker_rate_limit, limiter),
        JobLoggingMiddleware(),
        DeadLetterMiddleware(
            amqp_url=config.amqp_url,
            message_ttl=config.dead_letter_ttl,
            max_length=config.dead_letter_max_length,
        ),
    )

    # Completed results are only retained when a result backend is configured
    if config.queue_result_backend_url:
        backend = RedisAsyncResultBackend(
            config.queue_result_backend_url,
            result_ex_time=config.queue_result_ttl,
        )
        broker = broker.with_result_backend(backend)
        logger.debug("Queue result backend configured: Redis")

    logger.debug(f"Created broker for queue '{queue_name}' (routing_key='{routing_key}')")
    return broker


def create_test_broker() -> AsyncBroker:
    """Create an InMemoryBroker for testing.

    Returns:
        InMemoryBroker executing jobs in-place, before ``kiq`` returns.
    """
    return InMemoryBroker(await_inplace=True).with_middlewares(JobLoggingMiddleware())
