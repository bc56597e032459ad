"""
Command line entry point for the bid worker.

Usage:
    python -m bid_worker [--config PATH] [run]
    python -m bid_worker recover
    python -m bid_worker dead-letters [--limit N]
    python -m bid_worker requeue-dead-letters [--limit N]
    python -m bid_worker init-db

Examples:
    # Consume the queue until SIGINT / SIGTERM
    REDIS_URL=redis://localhost:6380 python -m bid_worker run

    # Look at what failed, then give it another go
    python -m bid_worker dead-letters --limit 20
    python -m bid_worker requeue-dead-letters --limit 20
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, TextIO

import redis

from auction_kernel.db.engine import Database
from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.exceptions import ConfigurationError
from auction_kernel.logging_config import configure_logging, get_logger
from auction_kernel.services.accept_bid_processor import AcceptBidProcessor
from auction_kernel.services.bid_processor import BidProcessor
from auction_kernel.services.pending_bid_log import PendingBidLog

from bid_worker.config import WorkerConfig, load_worker_config
from bid_worker.domain.retry import RetryPolicy
from bid_worker.services.job_queue import RedisJobQueue
from bid_worker.services.recovery import RecoveryService
from bid_worker.services.result_publisher import ResultPublisher
from bid_worker.services.worker import BidWorker

logger = get_logger("worker.cli")

RedisFactory = Callable[[str], Any]
DatabaseFactory = Callable[[str], Database]


def _redis_from_url(url: str) -> redis.Redis:
    return redis.from_url(url, decode_responses=True)


@dataclass
class WorkerComponents:
    """Everything ``run`` and the maintenance commands need, built once."""

    config: WorkerConfig
    database: Database
    queue: RedisJobQueue
    publisher: ResultPublisher
    pending_log: PendingBidLog
    recovery: RecoveryService
    worker: BidWorker

    def close(self) -> None:
        self.worker.close()
        self.database.dispose()


def build_components(
    config: WorkerConfig,
    redis_factory: RedisFactory = _redis_from_url,
    database_factory: DatabaseFactory = Database.from_url,
    clock: Clock | None = None,
) -> WorkerComponents:
    """Construct and wire every client from the configuration."""
    clock = clock or SystemClock()
    database = database_factory(config.database_url)
    # Separate connections: BLPOP blocks its connection for up to the timeout
    queue = RedisJobQueue(
        redis_factory(config.redis_url),
        queue_key=config.queue_key,
        dead_letter_key=config.dead_letter_key,
        extra_queue_keys=config.queue_keys[1:],
        clock=clock,
    )
    publisher = ResultPublisher(
        redis_factory(config.redis_url),
        clock=clock,
        channel_prefix=config.channel_prefix,
    )
    pending_log = PendingBidLog(database, config.pending_table)
    recovery = RecoveryService(pending_log, queue, accept_queue_key=config.accept_queue_key)
    worker = BidWorker(
        queue=queue,
        pending_log=pending_log,
        bid_processor=BidProcessor(database, clock),
        accept_processor=AcceptBidProcessor(database, clock, notifier=publisher),
        publisher=publisher,
        retry_policy=RetryPolicy(
            max_retries=config.max_retries,
            base_delay_seconds=config.retry_base_delay_seconds,
            jitter=config.retry_jitter,
        ),
        clock=clock,
        recovery=recovery,
        pop_timeout_seconds=config.pop_timeout_seconds,
        reconnect_delay_seconds=config.reconnect_delay_seconds,
    )
    return WorkerComponents(
        config=config,
        database=database,
        queue=queue,
        publisher=publisher,
        pending_log=pending_log,
        recovery=recovery,
        worker=worker,
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bid_worker",
        description="Apply queued bids and bid acceptances to the auction ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: $BID_WORKER_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Recover pending jobs, then consume the queue (default)")
    subparsers.add_parser("recover", help="Re-enqueue pending jobs and exit")
    subparsers.add_parser("init-db", help="Create the worker-owned tables")

    for name, help_text in (
        ("dead-letters", "Print dead-lettered jobs as JSON lines"),
        ("requeue-dead-letters", "Move dead-lettered jobs back onto the queue"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of entries (default: 100)",
        )

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "run"
    return args


def _install_signal_handlers(worker: BidWorker) -> None:
    def _handle(signum: int, _frame: Any) -> None:
        logger.info("shutdown_requested", extra={"signal": signal.Signals(signum).name})
        worker.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    redis_factory: RedisFactory = _redis_from_url,
    database_factory: DatabaseFactory = Database.from_url,
    out: TextIO | None = None,
) -> int:
    args = _parse_args(argv)
    out = out or sys.stdout

    try:
        config = load_worker_config(args.config, environ)
    except ConfigurationError as exc:
        print(f"bid_worker: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=config.log_level)
    logger.info(
        "worker_configured",
        extra={
            "command": args.command,
            "redis_url": config.redacted_redis_url(),
            "database": config.redacted_database_url(),
            "queue_keys": list(config.queue_keys),
        },
    )

    components = build_components(config, redis_factory, database_factory)
    try:
        if args.command == "run":
            _install_signal_handlers(components.worker)
            components.worker.start()
        elif args.command == "recover":
            count = components.recovery.recover()
            print(f"requeued {count} pending job(s)", file=out)
        elif args.command == "init-db":
            components.pending_log.ensure_table()
            print(f"worker tables ready ({config.pending_table}, bid_job_receipts)", file=out)
        elif args.command == "dead-letters":
            for entry in components.queue.list_dead_letters(args.limit):
                print(json.dumps(entry, sort_keys=True), file=out)
        elif args.command == "requeue-dead-letters":
            moved = components.queue.requeue_dead_letters(args.limit)
            print(f"requeued {moved} dead-lettered job(s)", file=out)
    finally:
        components.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
