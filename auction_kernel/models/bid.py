"""
Module: auction_kernel.models.bid
Responsibility: ORM mapping of the CMS ``bids`` table and its ``bids_rels``
    relationship rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

The CMS stores relationships in a side table: one row per (bid, path),
where path names the field ("product" or "bidder") and exactly one of
products_id / users_id is set.  The worker writes both rows itself, in the
same transaction as the bid.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from auction_kernel.db.base import Base, TimestampedBase

BID_PRODUCT_PATH = "product"
BID_BIDDER_PATH = "bidder"


class Bid(TimestampedBase):
    """An accepted bid.  Rejected bids are never stored here."""

    __tablename__ = "bids"

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    bid_time: Mapped[datetime | None] = mapped_column(nullable=True)

    # Hide the bidder's full name in bid history
    censor_name: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    rels: Mapped[list["BidRelationship"]] = relationship(
        "BidRelationship",
        back_populates="parent",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bid {self.id}: {self.amount}>"


class BidRelationship(Base):
    """Relationship row linking a bid to its product or bidder."""

    __tablename__ = "bids_rels"

    __table_args__ = (
        Index("bids_rels_parent_idx", "parent_id"),
        Index("bids_rels_products_id_idx", "products_id"),
    )

    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)

    parent_id: Mapped[int] = mapped_column(
        ForeignKey("bids.id", ondelete="CASCADE"),
        nullable=False,
    )

    path: Mapped[str] = mapped_column(String(50), nullable=False)

    products_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=True,
    )

    users_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )

    parent: Mapped[Bid] = relationship("Bid", back_populates="rels")
