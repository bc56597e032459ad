"""Pure types and the retry state machine for the bid worker.  ZERO I/O."""

from bid_worker.domain.retry import (
    FailureKind,
    RetryAction,
    RetryDecision,
    RetryPolicy,
    classify_failure,
)
from bid_worker.domain.types import JobResolution, JobStatus

__all__ = [
    "FailureKind",
    "JobResolution",
    "JobStatus",
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "classify_failure",
]
