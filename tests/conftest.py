"""
Pytest fixtures for the bid worker test suite.

Provides:
- SQLite-backed Database per test (real ORM models, real transactions)
- An in-memory Redis test double for queue and pub/sub commands
- Deterministic clock, seed factories for users and auctions
- A fully wired BidWorker

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  Tests marked ``postgres`` run
  only when this points at PostgreSQL; everything else uses SQLite.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
import redis
from sqlalchemy import func, select

from auction_kernel.db.engine import Database
from auction_kernel.domain.clock import DeterministicClock
from auction_kernel.domain.jobs import AcceptBidJob, PlaceBidJob
from auction_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from auction_kernel.models import Product, User
from auction_kernel.services.accept_bid_processor import AcceptBidProcessor
from auction_kernel.services.bid_processor import BidProcessor
from auction_kernel.services.pending_bid_log import PendingBidLog

from bid_worker.domain.retry import RetryPolicy
from bid_worker.services.job_queue import RedisJobQueue
from bid_worker.services.recovery import RecoveryService
from bid_worker.services.result_publisher import ResultPublisher
from bid_worker.services.worker import BidWorker

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture auction_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, worker):
            worker.handle(payload)
            logs = captured_logs()
            assert any(r["message"] == "bid_accepted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("auction_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Redis test double
# =============================================================================


class FakeRedis:
    """
    In-memory stand-in for the handful of Redis commands the worker uses.

    ``pop_errors`` / ``push_errors`` / ``publish_errors`` make the next N
    calls of that kind raise ``redis.ConnectionError``.
    """

    def __init__(self):
        self.lists: dict[str, list[str]] = {}
        self.published: list[tuple[str, str]] = []
        self.pop_errors = 0
        self.push_errors = 0
        self.publish_errors = 0
        self.closed = False
        self.blpop_calls: list[tuple[tuple[str, ...], int]] = []

    def rpush(self, key, *values):
        if self.push_errors:
            self.push_errors -= 1
            raise redis.ConnectionError("connection refused")
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def lpop(self, key):
        items = self.lists.get(key)
        if not items:
            return None
        return items.pop(0)

    def blpop(self, keys, timeout=0):
        if isinstance(keys, str):
            keys = [keys]
        self.blpop_calls.append((tuple(keys), timeout))
        if self.pop_errors:
            self.pop_errors -= 1
            raise redis.ConnectionError("connection lost")
        for key in keys:
            if self.lists.get(key):
                return key, self.lists[key].pop(0)
        return None

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        if end == -1:
            return list(items[start:])
        return list(items[start:end + 1])

    def llen(self, key):
        return len(self.lists.get(key, []))

    def publish(self, channel, message):
        if self.publish_errors:
            self.publish_errors -= 1
            raise redis.ConnectionError("connection lost")
        self.published.append((channel, message))
        return 1

    def ping(self):
        return True

    def close(self):
        self.closed = True

    # Test helpers

    def queued(self, key="bids:pending") -> list[dict]:
        return [json.loads(item) for item in self.lists.get(key, [])]

    def events(self, channel: str) -> list[dict]:
        return [json.loads(msg) for ch, msg in self.published if ch == channel]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def database(tmp_path):
    """A fresh SQLite database with every table created."""
    db = Database.from_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def make_user(database):
    """Factory: insert a user, return its id."""
    counter = iter(range(1, 10_000))

    def _make(name: str = "Jane Doe", email: str | None = None) -> int:
        with database.session_scope() as session:
            user = User(name=name, email=email or f"user{next(counter)}@example.com")
            session.add(user)
            session.flush()
            return user.id

    return _make


@pytest.fixture
def make_auction(database, clock):
    """Factory: insert an auction (product), return its id."""

    def _make(
        starting_price: str = "500",
        bid_interval: str = "50",
        current_bid: str | None = None,
        status: str = "available",
        active: bool = True,
        ends_in: timedelta = timedelta(days=1),
        title: str = "Vintage Camera",
    ) -> int:
        with database.session_scope() as session:
            product = Product(
                title=title,
                starting_price=Decimal(starting_price),
                bid_interval=Decimal(bid_interval),
                current_bid=Decimal(current_bid) if current_bid is not None else None,
                status=status,
                active=active,
                auction_end_date=clock.now() + ends_in,
            )
            session.add(product)
            session.flush()
            return product.id

    return _make


@pytest.fixture
def load_product(database):
    def _load(product_id: int) -> Product:
        with database.session_scope() as session:
            return session.get(Product, product_id)

    return _load


@pytest.fixture
def count_rows(database):
    """Factory: count rows of a model, optionally filtered."""

    def _count(model, *where) -> int:
        with database.session_scope() as session:
            stmt = select(func.count()).select_from(model)
            for clause in where:
                stmt = stmt.where(clause)
            return session.execute(stmt).scalar_one()

    return _count


# =============================================================================
# Job factories
# =============================================================================


@pytest.fixture
def bid_job(clock):
    counter = iter(range(1, 10_000))

    def _make(product_id: int, bidder_id: int, amount, **kwargs) -> PlaceBidJob:
        kwargs.setdefault("job_id", f"job-{next(counter)}")
        kwargs.setdefault("timestamp", clock.now_ms())
        return PlaceBidJob(
            product_id=product_id,
            bidder_id=bidder_id,
            amount=Decimal(str(amount)),
            **kwargs,
        )

    return _make


@pytest.fixture
def accept_job(clock):
    counter = iter(range(1, 10_000))

    def _make(product_id: int, seller_id: int, bidder_id: int, amount, **kwargs) -> AcceptBidJob:
        kwargs.setdefault("job_id", f"accept-{next(counter)}")
        kwargs.setdefault("timestamp", clock.now_ms())
        return AcceptBidJob(
            product_id=product_id,
            seller_id=seller_id,
            bidder_id=bidder_id,
            amount=Decimal(str(amount)),
            **kwargs,
        )

    return _make


# =============================================================================
# Worker fixtures
# =============================================================================


@pytest.fixture
def job_queue(fake_redis, clock) -> RedisJobQueue:
    return RedisJobQueue(fake_redis, clock=clock)


@pytest.fixture
def publisher(fake_redis, clock) -> ResultPublisher:
    return ResultPublisher(fake_redis, clock=clock)


@pytest.fixture
def pending_log(database) -> PendingBidLog:
    log = PendingBidLog(database)
    log.ensure_table()
    return log


@pytest.fixture
def bid_processor(database, clock) -> BidProcessor:
    return BidProcessor(database, clock)


@pytest.fixture
def accept_processor(database, clock, publisher) -> AcceptBidProcessor:
    return AcceptBidProcessor(database, clock, notifier=publisher)


@pytest.fixture
def build_worker(job_queue, pending_log, bid_processor, accept_processor, publisher, clock):
    """Factory: a BidWorker with overridable collaborators."""

    def _build(**overrides) -> BidWorker:
        parts = dict(
            queue=job_queue,
            pending_log=pending_log,
            bid_processor=bid_processor,
            accept_processor=accept_processor,
            publisher=publisher,
            retry_policy=RetryPolicy(max_retries=3, base_delay_seconds=1.0),
            clock=clock,
            recovery=RecoveryService(pending_log, job_queue),
            pop_timeout_seconds=1,
            reconnect_delay_seconds=1.0,
            worker_id="test-worker",
        )
        parts.update(overrides)
        return BidWorker(**parts)

    return _build


@pytest.fixture
def worker(build_worker) -> BidWorker:
    return build_worker()


# =============================================================================
# PostgreSQL
# =============================================================================


def postgres_url() -> str | None:
    url = os.environ.get("DATABASE_URL", "")
    return url if url.startswith("postgresql") else None


@pytest.fixture
def postgres_database():
    """A PostgreSQL Database with fresh tables; skips without DATABASE_URL."""
    url = postgres_url()
    if url is None:
        pytest.skip("DATABASE_URL does not point at PostgreSQL")
    db = Database.from_url(url, pool_size=20, max_overflow=10)
    db.drop_tables()
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()
