"""ORM models for the auction ledger and the worker-owned tables."""

from auction_kernel.models.auction import Product
from auction_kernel.models.bid import Bid, BidRelationship
from auction_kernel.models.receipt import JobReceipt, ReceiptOutcome
from auction_kernel.models.settlement import (
    Message,
    MessageRelationship,
    Transaction,
    TransactionRelationship,
    TransactionStatus,
)
from auction_kernel.models.user import User

__all__ = [
    "Bid",
    "BidRelationship",
    "JobReceipt",
    "Message",
    "MessageRelationship",
    "Product",
    "ReceiptOutcome",
    "Transaction",
    "TransactionRelationship",
    "TransactionStatus",
    "User",
]
