"""
bid_worker.domain.types -- Job lifecycle status and resolution.  ZERO I/O.

Every job the worker pops ends in exactly one resolution: a terminal
status (ACCEPTED, REJECTED, DEAD_LETTERED) or RETRYING, which means the
job went back on the queue with a higher retry count.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class JobStatus(str, Enum):
    """Where a job is in the worker's state machine."""

    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"  # Requeued after a transient failure
    ACCEPTED = "accepted"  # Bid applied or auction sold
    REJECTED = "rejected"  # Failed validation, never retried
    DEAD_LETTERED = "dead_lettered"  # Retries exhausted or payload unreadable

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({JobStatus.ACCEPTED, JobStatus.REJECTED, JobStatus.DEAD_LETTERED})


@dataclass(frozen=True)
class JobResolution:
    """What ``BidWorker.handle()`` did with one raw payload."""

    status: JobStatus
    job_id: str | None = None
    job_type: str | None = None
    retry_count: int = 0
    error: str | None = None
    replayed: bool = False
