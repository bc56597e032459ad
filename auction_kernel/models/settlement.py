"""
Module: auction_kernel.models.settlement
Responsibility: ORM mapping of the CMS ``messages`` and ``transactions``
    tables (and their ``_rels`` relationship rows) -- the settlement
    artifacts created when a seller accepts a bid.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by AcceptBidProcessor):
    - Exactly one message and one transaction per sold auction.  Both are
      written in the transaction that flips the product to ``sold``.
    - A new transaction always starts in ``pending``.  No payment or escrow
      state is tracked here.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from auction_kernel.db.base import Base, TimestampedBase

PRODUCT_PATH = "product"
SENDER_PATH = "sender"
RECEIVER_PATH = "receiver"
SELLER_PATH = "seller"
BUYER_PATH = "buyer"


class TransactionStatus(str, Enum):
    """Lifecycle of a settlement transaction (advanced by the CMS)."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Message(TimestampedBase):
    """A conversation message about a product."""

    __tablename__ = "messages"

    message: Mapped[str] = mapped_column(String(4000), nullable=False)

    read: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=False)

    rels: Mapped[list["MessageRelationship"]] = relationship(
        "MessageRelationship",
        back_populates="parent",
        cascade="all, delete-orphan",
    )


class MessageRelationship(Base):
    """Links a message to its product, sender, and receiver."""

    __tablename__ = "messages_rels"

    __table_args__ = (
        Index("messages_rels_parent_idx", "parent_id"),
    )

    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    parent_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), nullable=False,
    )
    path: Mapped[str] = mapped_column(String(50), nullable=False)
    products_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=True,
    )
    users_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
    )

    parent: Mapped[Message] = relationship("Message", back_populates="rels")


class Transaction(TimestampedBase):
    """Sale record between seller and buyer for an accepted bid."""

    __tablename__ = "transactions"

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.PENDING.value,
    )

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    rels: Mapped[list["TransactionRelationship"]] = relationship(
        "TransactionRelationship",
        back_populates="parent",
        cascade="all, delete-orphan",
    )


class TransactionRelationship(Base):
    """Links a transaction to its product, seller, and buyer."""

    __tablename__ = "transactions_rels"

    __table_args__ = (
        Index("transactions_rels_parent_idx", "parent_id"),
    )

    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    parent_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False,
    )
    path: Mapped[str] = mapped_column(String(50), nullable=False)
    products_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=True,
    )
    users_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
    )

    parent: Mapped[Transaction] = relationship("Transaction", back_populates="rels")
