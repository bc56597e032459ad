"""
PendingBidLog -- durable mirror of in-flight queue jobs.

Responsibility:
    Records a job before it is processed and forgets it once the job has a
    terminal outcome, so a worker crash between "popped from the queue" and
    "resolved" leaves a row that startup recovery re-enqueues.

Architecture position:
    Kernel > Services -- imperative shell.  Uses SQLAlchemy Core rather than
    the ORM because the table name is deployment configuration.  Each call
    runs in its own short transaction, separate from job processing.

Invariants enforced:
    - One row per job id (UNIQUE).  ``record()`` is insert-or-ignore, so
      re-recording a recovered job is a no-op.
    - Rows are removed only on a terminal outcome (accepted, rejected,
      dead-lettered), never on a transient failure.

Failure modes:
    - ``record()``, ``remove()`` and ``update_retry_count()`` log database
      errors and return False.  The job's outcome is decided by the
      processing transaction, not by this log.
    - ``ensure_table()`` and ``list_pending()`` raise: recovery that cannot
      read the log must not pretend nothing was pending.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auction_kernel.db.engine import Database
from auction_kernel.db.types import datetime_from_epoch_ms, datetime_to_epoch_ms
from auction_kernel.domain.jobs import AcceptBidJob, BidJob, JobType, PlaceBidJob
from auction_kernel.logging_config import get_logger
from auction_kernel.models.receipt import JobReceipt

logger = get_logger("services.pending_bid_log")

DEFAULT_PENDING_TABLE = "pending_bids"


def pending_bids_table(name: str = DEFAULT_PENDING_TABLE, metadata: MetaData | None = None) -> Table:
    """Table definition for the pending-job log."""
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("job_id", String(64), nullable=False, unique=True),
        Column("job_type", String(20), nullable=False, default=JobType.BID.value),
        Column("product_id", Integer, nullable=False),
        Column("bidder_id", Integer, nullable=False),
        Column("seller_id", Integer, nullable=True),
        Column("amount", Numeric(12, 2), nullable=False),
        Column("timestamp", DateTime(timezone=True), nullable=False),
        Column("censor_name", Boolean, nullable=False, default=False),
        Column("retry_count", Integer, nullable=False, default=0),
        Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    )


class PendingBidLog:
    """
    Insert-or-ignore log of jobs between dequeue and terminal resolution.

    Contract:
        ``list_pending()`` returns typed jobs, oldest first, carrying the
        stored retry count.
    """

    def __init__(self, database: Database, table_name: str = DEFAULT_PENDING_TABLE):
        self._database = database
        self._table = pending_bids_table(table_name)

    @property
    def table(self) -> Table:
        return self._table

    def ensure_table(self) -> None:
        """Create the log table, and the receipt table it pairs with, if absent."""
        self._table.create(self._database.engine, checkfirst=True)
        JobReceipt.__table__.create(self._database.engine, checkfirst=True)
        logger.debug("pending_table_ready", extra={"table": self._table.name})

    def record(self, job: BidJob) -> bool:
        """Mirror ``job`` before processing.  No-op if the job id is present."""
        try:
            values = {
                "job_id": job.job_id,
                "job_type": job.job_type.value,
                "product_id": job.product_id,
                "bidder_id": job.bidder_id,
                "seller_id": job.seller_id if isinstance(job, AcceptBidJob) else None,
                "amount": job.amount,
                "timestamp": datetime_from_epoch_ms(job.timestamp),
                "censor_name": job.censor_name,
                "retry_count": job.retry_count,
            }
            with self._database.engine.begin() as conn:
                conn.execute(self._insert_ignoring_duplicates(values))
        except IntegrityError:
            logger.debug("pending_already_recorded")
            return True
        except (SQLAlchemyError, OverflowError, ValueError, OSError):
            logger.error(
                "pending_record_failed",
                extra={"table": self._table.name},
                exc_info=True,
            )
            return False
        return True

    def remove(self, job_id: str) -> bool:
        try:
            with self._database.engine.begin() as conn:
                conn.execute(delete(self._table).where(self._table.c.job_id == job_id))
        except SQLAlchemyError:
            logger.error(
                "pending_remove_failed",
                extra={"table": self._table.name},
                exc_info=True,
            )
            return False
        return True

    def update_retry_count(self, job_id: str, retry_count: int) -> bool:
        try:
            with self._database.engine.begin() as conn:
                conn.execute(
                    update(self._table)
                    .where(self._table.c.job_id == job_id)
                    .values(retry_count=retry_count)
                )
        except SQLAlchemyError:
            logger.error(
                "pending_retry_update_failed",
                extra={"table": self._table.name, "retry_count": retry_count},
                exc_info=True,
            )
            return False
        return True

    def list_pending(self) -> list[BidJob]:
        """All logged jobs, oldest first."""
        with self._database.engine.connect() as conn:
            rows = conn.execute(
                select(self._table).order_by(
                    self._table.c.created_at.asc(), self._table.c.id.asc()
                )
            ).mappings().all()
        return [self._row_to_job(row) for row in rows]

    def count(self) -> int:
        with self._database.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self._table)).scalar_one()

    def _insert_ignoring_duplicates(self, values: dict):
        dialect = self._database.dialect_name
        if dialect == "postgresql":
            return (
                postgresql.insert(self._table)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["job_id"])
            )
        if dialect == "sqlite":
            return (
                sqlite.insert(self._table)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["job_id"])
            )
        # No portable upsert; record() treats the unique violation as a duplicate
        return insert(self._table).values(**values)

    @staticmethod
    def _row_to_job(row) -> BidJob:
        common = dict(
            job_id=row["job_id"],
            product_id=row["product_id"],
            bidder_id=row["bidder_id"],
            amount=row["amount"],
            timestamp=datetime_to_epoch_ms(row["timestamp"]),
            censor_name=bool(row["censor_name"]),
            retry_count=row["retry_count"] or 0,
        )
        if row["job_type"] == JobType.ACCEPT_BID.value:
            return AcceptBidJob(seller_id=row["seller_id"], **common)
        return PlaceBidJob(**common)

