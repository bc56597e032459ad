"""Redis-facing services and the worker loop."""

from bid_worker.services.job_queue import RedisJobQueue
from bid_worker.services.recovery import RecoveryService
from bid_worker.services.result_publisher import ResultPublisher
from bid_worker.services.worker import BidWorker

__all__ = [
    "BidWorker",
    "RecoveryService",
    "RedisJobQueue",
    "ResultPublisher",
]
