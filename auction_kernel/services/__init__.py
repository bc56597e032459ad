"""Services for the auction kernel (write side)."""

from auction_kernel.services.accept_bid_processor import (
    AcceptBidProcessor,
    MessageNotifier,
)
from auction_kernel.services.bid_processor import BidProcessor
from auction_kernel.services.ledger_service import AuctionLedger
from auction_kernel.services.pending_bid_log import (
    DEFAULT_PENDING_TABLE,
    PendingBidLog,
    pending_bids_table,
)

__all__ = [
    "AcceptBidProcessor",
    "AuctionLedger",
    "BidProcessor",
    "DEFAULT_PENDING_TABLE",
    "MessageNotifier",
    "PendingBidLog",
    "pending_bids_table",
]
