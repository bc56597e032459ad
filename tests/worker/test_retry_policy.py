"""
Tests for bid_worker.domain.retry -- failure classification and bounded
linear backoff.  Pure, no I/O.
"""

import random
from decimal import Decimal

import pytest
import redis
from hypothesis import given, strategies as st
from sqlalchemy.exc import OperationalError

from auction_kernel.exceptions import (
    AuctionNotFoundError,
    BidTooLowError,
    JobPayloadError,
    TransientProcessingError,
)
from bid_worker.domain.retry import (
    FailureKind,
    RetryAction,
    RetryPolicy,
    classify_failure,
)
from bid_worker.domain.types import JobStatus


class TestClassifyFailure:

    @pytest.mark.parametrize(
        "exc",
        [
            AuctionNotFoundError(1),
            BidTooLowError(1, Decimal("5"), Decimal("10")),
        ],
    )
    def test_validation_errors_are_terminal(self, exc):
        assert classify_failure(exc) is FailureKind.VALIDATION

    def test_payload_errors_are_malformed(self):
        assert classify_failure(JobPayloadError("bad")) is FailureKind.MALFORMED

    @pytest.mark.parametrize(
        "exc",
        [
            OperationalError("SELECT", {}, Exception("server closed the connection")),
            redis.ConnectionError("refused"),
            TransientProcessingError("job-1", "lock timeout"),
            RuntimeError("unexpected"),
        ],
    )
    def test_everything_else_is_transient(self, exc):
        assert classify_failure(exc) is FailureKind.TRANSIENT

    def test_message_text_is_ignored(self):
        """A transient error mentioning a validation message stays transient."""
        assert classify_failure(RuntimeError("Product not found")) is FailureKind.TRANSIENT


class TestRetryPolicy:

    def test_linear_backoff(self):
        policy = RetryPolicy(max_retries=4, base_delay_seconds=1.0)

        delays = [policy.decide(n).delay_seconds for n in range(3)]

        assert delays == [1.0, 2.0, 3.0]

    def test_default_three_attempts(self):
        policy = RetryPolicy()

        assert policy.decide(0).action is RetryAction.REQUEUE
        assert policy.decide(1).action is RetryAction.REQUEUE
        last = policy.decide(2)
        assert last.action is RetryAction.DEAD_LETTER
        assert last.retry_count == 3

    def test_single_attempt_policy(self):
        decision = RetryPolicy(max_retries=1).decide(0)
        assert decision.action is RetryAction.DEAD_LETTER

    def test_jitter_bounded(self):
        policy = RetryPolicy(max_retries=10, base_delay_seconds=2.0, jitter=0.5, rng=random.Random(7))

        for attempt in range(1, 9):
            delay = policy.delay_for(attempt)
            assert 2.0 * attempt <= delay <= 2.0 * attempt * 1.5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": 0},
            {"base_delay_seconds": -1},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    @given(
        max_retries=st.integers(min_value=1, max_value=20),
        base=st.floats(min_value=0, max_value=60, allow_nan=False),
    )
    def test_attempts_bounded_by_max_retries(self, max_retries, base):
        """Following decisions from retry_count 0 dead-letters after max_retries attempts."""
        policy = RetryPolicy(max_retries=max_retries, base_delay_seconds=base)

        retry_count = 0
        attempts = 1
        while True:
            decision = policy.decide(retry_count)
            if decision.action is RetryAction.DEAD_LETTER:
                break
            assert decision.retry_count == retry_count + 1
            assert decision.delay_seconds == pytest.approx(base * decision.retry_count)
            retry_count = decision.retry_count
            attempts += 1

        assert attempts == max_retries

    @given(retry_count=st.integers(min_value=0, max_value=50))
    def test_delay_never_negative(self, retry_count):
        decision = RetryPolicy(max_retries=100, base_delay_seconds=0.5, jitter=1.0).decide(retry_count)
        assert decision.delay_seconds >= 0


class TestJobStatus:

    def test_terminal_statuses(self):
        terminal = {s for s in JobStatus if s.is_terminal}
        assert terminal == {JobStatus.ACCEPTED, JobStatus.REJECTED, JobStatus.DEAD_LETTERED}
