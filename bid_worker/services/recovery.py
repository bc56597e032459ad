"""
RecoveryService -- startup drain of the pending-job log back into the queue.

A worker that crashed mid-job leaves the job's row in the pending log.  On
the next start every row is pushed back onto the work queue with its
stored retry count, before the loop takes new traffic.  Re-delivery is
safe: the pending log ignores duplicate job ids and the processors replay
a job whose receipt already exists.
"""

from __future__ import annotations

import redis

from auction_kernel.domain.jobs import AcceptBidJob, encode_job
from auction_kernel.logging_config import get_logger
from auction_kernel.services.pending_bid_log import PendingBidLog

from bid_worker.services.job_queue import RedisJobQueue

logger = get_logger("worker.recovery")


class RecoveryService:
    def __init__(
        self,
        pending_log: PendingBidLog,
        queue: RedisJobQueue,
        accept_queue_key: str | None = None,
    ):
        self._pending_log = pending_log
        self._queue = queue
        self._accept_queue_key = accept_queue_key

    def recover(self) -> int:
        """
        Re-enqueue every pending job.  Returns how many were pushed.

        A job whose push fails keeps its row and is retried on the next
        start; the remaining rows are still attempted.
        """
        self._pending_log.ensure_table()
        jobs = self._pending_log.list_pending()
        if not jobs:
            logger.info("recovery_nothing_pending")
            return 0

        logger.info("recovery_started", extra={"pending": len(jobs)})
        pushed = 0
        for job in jobs:
            key = self._accept_queue_key if isinstance(job, AcceptBidJob) else None
            extra = {
                "job_id": job.job_id,
                "job_type": job.job_type.value,
                "retry_count": job.retry_count,
            }
            try:
                self._queue.push(encode_job(job), key=key)
            except redis.RedisError:
                logger.error("pending_job_requeue_failed", extra=extra, exc_info=True)
                continue
            pushed += 1
            logger.info("job_requeued_from_pending_log", extra=extra)
        logger.info(
            "recovery_completed",
            extra={"requeued": pushed, "failed": len(jobs) - pushed},
        )
        return pushed
