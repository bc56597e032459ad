"""
Retry classification and backoff -- the worker's bounded retry state
machine.  ZERO I/O.

Responsibility:
    Splits processor failures into terminal and transient, and for a
    transient failure decides between another attempt (with its delay) and
    the dead-letter sink.

Invariants enforced:
    - Classification is by exception type, never by message text.
    - With ``n = retry_count + 1``: requeue when ``n < max_retries``, after
      ``base_delay * n`` seconds (plus at most ``jitter`` of that, drawn at
      random).  Otherwise dead-letter.  A job is therefore attempted at most
      ``max_retries`` times.
    - The delay is never negative and never shrinks as ``n`` grows when
      jitter is zero.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

from auction_kernel.exceptions import BidValidationError, JobPayloadError


class FailureKind(str, Enum):
    VALIDATION = "validation"  # Terminal, published as a rejection
    MALFORMED = "malformed"  # Terminal, dead-lettered without retry
    TRANSIENT = "transient"  # Retried up to max_retries


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised while handling a job to its failure kind."""
    if isinstance(exc, BidValidationError):
        return FailureKind.VALIDATION
    if isinstance(exc, JobPayloadError):
        return FailureKind.MALFORMED
    # Connection loss, lock contention, and anything unexpected
    return FailureKind.TRANSIENT


class RetryAction(str, Enum):
    REQUEUE = "requeue"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    retry_count: int
    delay_seconds: float = 0.0

    @property
    def should_requeue(self) -> bool:
        return self.action is RetryAction.REQUEUE


class RetryPolicy:
    """
    Linear backoff bounded by ``max_retries``.

    Contract:
        ``decide(retry_count)`` is called after a transient failure of an
        attempt whose job carried ``retry_count``.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        jitter: float = 0.0,
        rng: random.Random | None = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")
        if not 0 <= jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.jitter = jitter
        self._rng = rng or random.Random()

    def decide(self, retry_count: int) -> RetryDecision:
        attempt = max(retry_count, 0) + 1
        if attempt >= self.max_retries:
            return RetryDecision(RetryAction.DEAD_LETTER, retry_count=attempt)
        return RetryDecision(
            RetryAction.REQUEUE,
            retry_count=attempt,
            delay_seconds=self.delay_for(attempt),
        )

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay_seconds * attempt
        if self.jitter:
            delay += delay * self.jitter * self._rng.random()
        return delay
