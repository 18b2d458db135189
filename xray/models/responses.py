"""Response schemas of the write and health endpoints."""

from .base import BaseSchema


class WriteAccepted(BaseSchema):
    """A write event was accepted and queued; it is applied asynchronously."""

    success: bool = True
    job_id: str | None = None


class BulkWriteAccepted(WriteAccepted):
    """Bulk candidate write, with how many entries were queued or discarded."""

    accepted: int
    discarded: int


class HealthStatus(BaseSchema):
    status: str
    database: str
