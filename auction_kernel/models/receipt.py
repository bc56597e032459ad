"""
Module: auction_kernel.models.receipt
Responsibility: Worker-owned ``bid_job_receipts`` table -- one row per job
    id that reached a terminal outcome inside a processing transaction.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - job_id is UNIQUE.  A receipt is written in the same transaction as the
      bid / settlement rows it describes, so "receipt exists" and "rows
      exist" are always both true or both false.
    - Processors look the receipt up after locking the auction row, so a
      redelivered job replays the recorded outcome instead of writing again.

Failure modes:
    - IntegrityError on a concurrent duplicate insert.  The loser rolls back
      and is retried; on retry it finds the winner's receipt and replays.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from auction_kernel.db.base import Base


class ReceiptOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class JobReceipt(Base):
    """Terminal outcome of one processed job."""

    __tablename__ = "bid_job_receipts"

    __table_args__ = (
        Index("idx_bid_job_receipts_product", "product_id"),
    )

    job_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    job_type: Mapped[str] = mapped_column(String(20), nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    bidder_id: Mapped[int] = mapped_column(nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    outcome: Mapped[str] = mapped_column(String(20), nullable=False)

    reason_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Rows created by an accepted job
    bid_id: Mapped[int | None] = mapped_column(nullable=True)
    message_id: Mapped[int | None] = mapped_column(nullable=True)
    transaction_id: Mapped[int | None] = mapped_column(nullable=True)

    processed_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def accepted(self) -> bool:
        return self.outcome == ReceiptOutcome.ACCEPTED.value
