"""
BidWorker -- the queue consumer loop and per-job dispatch.

Contract:
    ``handle(raw)`` takes one raw queue payload to exactly one resolution:
    a terminal result (accepted or rejected, published), a bounded requeue,
    or the dead-letter sink.  ``run_once()`` pops and handles at most one
    job; ``run()`` loops until ``stop()``; ``start()`` recovers the pending
    log first.

Architecture: bid_worker/services.  Composes the kernel processors and
    pending log with the Redis queue and publisher, all injected.

Invariants enforced:
    - A payload is parsed once, here.  Processors only see typed jobs.
    - The pending-log row is written before processing and removed only on
      a terminal outcome.
    - Backoff waits go through the injected Clock.
    - An exception never ends the loop: queue errors wait
      ``reconnect_delay_seconds`` and carry on, job errors are classified.
"""

from __future__ import annotations

import os
import socket
import threading
from typing import Callable

import redis
from sqlalchemy.exc import SQLAlchemyError

from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.domain.jobs import AcceptBidJob, BidJob, decode_job, encode_job, parse_job
from auction_kernel.domain.outcomes import AcceptOutcome, BidOutcome, JobOutcome
from auction_kernel.exceptions import BidValidationError, JobPayloadError
from auction_kernel.logging_config import LogContext, get_logger
from auction_kernel.services.accept_bid_processor import AcceptBidProcessor
from auction_kernel.services.bid_processor import BidProcessor
from auction_kernel.services.pending_bid_log import PendingBidLog
from auction_kernel.utils.idempotency import generate_job_id

from bid_worker.domain.retry import FailureKind, RetryPolicy, classify_failure
from bid_worker.domain.types import JobResolution, JobStatus
from bid_worker.services.job_queue import RedisJobQueue
from bid_worker.services.recovery import RecoveryService
from bid_worker.services.result_publisher import ResultPublisher

logger = get_logger("worker.loop")


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class BidWorker:
    """Single sequential consumer of the bid queue.

    Non-goals:
        - No in-process concurrency.  Scale out with more processes; the
          auction row lock keeps them correct.
    """

    def __init__(
        self,
        queue: RedisJobQueue,
        pending_log: PendingBidLog,
        bid_processor: BidProcessor,
        accept_processor: AcceptBidProcessor,
        publisher: ResultPublisher,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        recovery: RecoveryService | None = None,
        pop_timeout_seconds: int = 5,
        reconnect_delay_seconds: float = 1.0,
        worker_id: str | None = None,
        job_id_factory: Callable[[], str] | None = None,
    ):
        self._queue = queue
        self._pending_log = pending_log
        self._bid_processor = bid_processor
        self._accept_processor = accept_processor
        self._publisher = publisher
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock or SystemClock()
        self._recovery = recovery
        self._pop_timeout = pop_timeout_seconds
        self._reconnect_delay = reconnect_delay_seconds
        self._worker_id = worker_id or default_worker_id()
        self._job_id_factory = job_id_factory or (
            lambda: generate_job_id(self._clock.now_ms())
        )
        self._stop_event = threading.Event()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Recover pending jobs, then consume until stopped."""
        with LogContext.bind(worker_id=self._worker_id):
            if self._recovery is not None:
                try:
                    self._recovery.recover()
                except SQLAlchemyError:
                    # Rows stay in the pending log for the next start
                    logger.error("recovery_failed", exc_info=True)
            logger.info(
                "worker_started",
                extra={"queue_key": self._queue.queue_key, "max_retries": self._retry_policy.max_retries},
            )
        self.run()

    def run(self) -> None:
        with LogContext.bind(worker_id=self._worker_id):
            while not self._stop_event.is_set():
                try:
                    self.run_once()
                except Exception:
                    logger.exception("worker_iteration_failed")
                    self._clock.sleep(self._reconnect_delay)
            logger.info("worker_stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current pop or job."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def close(self) -> None:
        self._queue.close()
        self._publisher.close()

    # -------------------------------------------------------------------------
    # One iteration
    # -------------------------------------------------------------------------

    def run_once(self) -> JobResolution | None:
        """Pop and handle at most one job.  None when nothing arrived."""
        try:
            popped = self._queue.pop(timeout=self._pop_timeout)
        except redis.RedisError as exc:
            logger.warning(
                "queue_unavailable",
                extra={"error": str(exc), "retry_in_seconds": self._reconnect_delay},
            )
            self._clock.sleep(self._reconnect_delay)
            return None
        if popped is None:
            return None
        key, raw = popped
        return self.handle(raw, source_key=key)

    def handle(self, raw: str | bytes, source_key: str | None = None) -> JobResolution:
        """Parse, dispatch, and resolve one raw payload."""
        data = None
        try:
            data = decode_job(raw)
            job = parse_job(data, self._job_id_factory)
        except JobPayloadError as exc:
            return self._dead_letter_malformed(raw, data, exc)

        with LogContext.bind(
            job_id=job.job_id,
            job_type=job.job_type.value,
            product_id=job.product_id,
            bidder_id=job.bidder_id,
        ):
            try:
                return self._handle_job(job, source_key)
            except Exception as exc:
                # Outside the processor, e.g. pending log or publish: same
                # bounded requeue then dead-letter as a transient failure
                logger.exception("job_handling_failed")
                return self._handle_transient(job, exc, source_key)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _handle_job(self, job: BidJob, source_key: str | None) -> JobResolution:
        logger.info(
            "job_received",
            extra={"amount": job.amount, "retry_count": job.retry_count},
        )
        self._pending_log.record(job)

        try:
            outcome = self._process(job)
        except Exception as exc:
            if classify_failure(exc) is FailureKind.VALIDATION:
                outcome = _rejected_outcome(job, exc)
            else:
                return self._handle_transient(job, exc, source_key)

        self._pending_log.remove(job.job_id)
        self._publish(outcome)
        status = JobStatus.ACCEPTED if outcome.success else JobStatus.REJECTED
        logger.info(
            "job_resolved",
            extra={"status": status.value, "replayed": outcome.replayed},
        )
        return JobResolution(
            status,
            job_id=job.job_id,
            job_type=job.job_type.value,
            retry_count=job.retry_count,
            error=outcome.error,
            replayed=outcome.replayed,
        )

    def _process(self, job: BidJob) -> JobOutcome:
        if isinstance(job, AcceptBidJob):
            return self._accept_processor.process(job)
        return self._bid_processor.process(job)

    def _publish(self, outcome: JobOutcome) -> None:
        if isinstance(outcome, AcceptOutcome):
            self._publisher.publish_accept_result(outcome)
        else:
            self._publisher.publish_bid_result(outcome)

    def _handle_transient(
        self, job: BidJob, exc: Exception, source_key: str | None
    ) -> JobResolution:
        decision = self._retry_policy.decide(job.retry_count)
        error = f"{type(exc).__name__}: {exc}"

        if decision.should_requeue:
            logger.warning(
                "job_retry_scheduled",
                extra={
                    "retry_count": decision.retry_count,
                    "max_retries": self._retry_policy.max_retries,
                    "delay_seconds": decision.delay_seconds,
                    "error": error,
                },
            )
            self._clock.sleep(decision.delay_seconds)
            self._pending_log.update_retry_count(job.job_id, decision.retry_count)
            payload = encode_job(job.with_retry_count(decision.retry_count))
            try:
                self._queue.push(payload, key=source_key)
            except redis.RedisError:
                # The pending row, when present, brings the job back on restart
                logger.error("job_requeue_failed", extra={"payload": payload}, exc_info=True)
            return JobResolution(
                JobStatus.RETRYING,
                job_id=job.job_id,
                job_type=job.job_type.value,
                retry_count=decision.retry_count,
                error=error,
            )

        logger.error(
            "job_dead_lettered",
            extra={"retry_count": decision.retry_count, "error": error},
        )
        self._queue.push_dead_letter(
            job.with_retry_count(decision.retry_count).to_payload(), error
        )
        self._pending_log.remove(job.job_id)
        self._publisher.publish_failure(job)
        return JobResolution(
            JobStatus.DEAD_LETTERED,
            job_id=job.job_id,
            job_type=job.job_type.value,
            retry_count=decision.retry_count,
            error=error,
        )

    def _dead_letter_malformed(
        self, raw: str | bytes, data: dict | None, exc: JobPayloadError
    ) -> JobResolution:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        logger.error(
            "malformed_job_dead_lettered",
            extra={"reason": exc.reason, "payload_size": len(text)},
        )
        payload = dict(data) if data is not None else {"raw": text}
        self._queue.push_dead_letter(payload, str(exc))
        job_id = data.get("jobId") if data is not None else None
        return JobResolution(
            JobStatus.DEAD_LETTERED,
            job_id=job_id if isinstance(job_id, str) else None,
            error=str(exc),
        )


def _rejected_outcome(job: BidJob, exc: BidValidationError) -> JobOutcome:
    if isinstance(job, AcceptBidJob):
        return AcceptOutcome.rejected(
            job.job_id, job.product_id, job.seller_id, job.bidder_id, job.amount, exc
        )
    return BidOutcome.rejected(job.job_id, job.product_id, job.bidder_id, job.amount, exc)
