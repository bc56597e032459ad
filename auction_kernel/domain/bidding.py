"""
Bidding rules -- pure functions over an auction snapshot.  ZERO I/O.

Responsibility:
    Decides whether a bid may be applied to an auction, and what the next
    minimum bid is.  The processors call these under the auction row lock;
    keeping them pure lets the same rules be property-tested without a
    database.

Invariants enforced:
    - A bid is accepted only if status == available, active, now < end
      date, and amount >= minimum_bid.
    - minimum_bid = current_bid + bid_increment when current_bid > 0,
      otherwise starting_price.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from auction_kernel.exceptions import (
    AuctionEndedError,
    AuctionInactiveError,
    AuctionNotAvailableError,
    BidTooLowError,
)


class AuctionStatus(str, Enum):
    """Lifecycle status of an auction (product) row."""

    AVAILABLE = "available"
    SOLD = "sold"
    ENDED = "ended"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AuctionSnapshot:
    """The fields of an auction row the bidding rules read."""

    product_id: int
    status: str
    active: bool
    auction_end_date: datetime
    starting_price: Decimal
    bid_increment: Decimal
    current_bid: Decimal | None = None


def minimum_bid(
    current_bid: Decimal | None,
    starting_price: Decimal,
    bid_increment: Decimal,
) -> Decimal:
    """Lowest amount the next bid may have."""
    if current_bid is not None and current_bid > 0:
        return current_bid + bid_increment
    return starting_price


def check_open_for_bids(auction: AuctionSnapshot, now: datetime) -> None:
    """Raise the matching validation error if the auction takes no bids.

    Checked in order: status, active flag, end date.
    """
    if auction.status != AuctionStatus.AVAILABLE.value:
        raise AuctionNotAvailableError(auction.product_id, auction.status)
    if not auction.active:
        raise AuctionInactiveError(auction.product_id)
    if auction.auction_end_date <= now:
        raise AuctionEndedError(
            auction.product_id, auction.auction_end_date.isoformat()
        )


def validate_bid(auction: AuctionSnapshot, amount: Decimal, now: datetime) -> Decimal:
    """
    Validate a bid against an auction snapshot.

    Returns:
        The minimum bid the amount was checked against.

    Raises:
        AuctionNotAvailableError, AuctionInactiveError, AuctionEndedError,
        BidTooLowError.
    """
    check_open_for_bids(auction, now)
    floor = minimum_bid(
        auction.current_bid, auction.starting_price, auction.bid_increment
    )
    if amount < floor:
        raise BidTooLowError(auction.product_id, amount, floor)
    return floor


def censor_display_name(name: str | None) -> str | None:
    """Hide a bidder's name, keeping only the first letter of each word.

    "Jane Doe" -> "J*** D***"
    """
    if not name:
        return name
    return " ".join(f"{part[0]}***" for part in name.split())
