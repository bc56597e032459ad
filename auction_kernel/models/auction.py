"""
Module: auction_kernel.models.auction
Responsibility: ORM mapping of the CMS ``products`` table -- the auction
    entity every bid and acceptance locks.
Architecture position: Kernel > Models.  May import from db/base.py and
    pure domain types only.

Invariants enforced (by the processors, under SELECT ... FOR UPDATE):
    - current_bid equals the amount of the most recently accepted bid, or
      is NULL when the auction has no bids.
    - status moves available -> sold at most once.

Failure modes:
    - Lock waits on this row are unbounded (database default); the worker
      relies on short transactions rather than a lock timeout.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from auction_kernel.db.base import TimestampedBase
from auction_kernel.db.types import as_utc
from auction_kernel.domain.bidding import AuctionSnapshot, AuctionStatus


class Product(TimestampedBase):
    """
    Auction entity (a product listing with an auction window).

    Contract:
        Only the bid and accept-bid processors mutate current_bid and
        status, and only while holding the row lock.

    Non-goals:
        - Listing fields the worker does not use (description, images,
          keywords) are not mapped.
    """

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_products_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    starting_price: Mapped[Decimal] = mapped_column(nullable=False)

    # Minimum step between consecutive bids
    bid_interval: Mapped[Decimal] = mapped_column(nullable=False)

    current_bid: Mapped[Decimal | None] = mapped_column(nullable=True)

    auction_end_date: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuctionStatus.AVAILABLE.value,
    )

    # Visibility flag; hidden listings take no bids
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_snapshot(self) -> AuctionSnapshot:
        return AuctionSnapshot(
            product_id=self.id,
            status=self.status,
            active=self.active,
            auction_end_date=as_utc(self.auction_end_date),
            starting_price=self.starting_price,
            bid_increment=self.bid_interval,
            current_bid=self.current_bid,
        )

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.status} current_bid={self.current_bid}>"
