"""Model-side plumbing: request serialization and dead-letter recovery."""

from strand.models.dead_letter import DeadLetterStore, FailedRequest, RetryOutcome
from strand.models.request_queue import (
    QueuedModel,
    QueuedRequest,
    QueueStats,
    RequestQueue,
    ResultChannel,
)

__all__ = [
    "DeadLetterStore",
    "FailedRequest",
    "RetryOutcome",
    "QueuedModel",
    "QueuedRequest",
    "QueueStats",
    "RequestQueue",
    "ResultChannel",
]
