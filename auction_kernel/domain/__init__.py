"""
auction_kernel.domain -- Pure types and rules for bid processing.

ZERO I/O, except SystemClock.
"""

from auction_kernel.domain.bidding import (
    AuctionSnapshot,
    AuctionStatus,
    censor_display_name,
    minimum_bid,
    validate_bid,
)
from auction_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from auction_kernel.domain.jobs import (
    AcceptBidJob,
    BidJob,
    JobType,
    PlaceBidJob,
    decode_job,
    encode_job,
    parse_job,
)
from auction_kernel.domain.outcomes import AcceptOutcome, BidOutcome, JobOutcome

__all__ = [
    "AcceptBidJob",
    "AcceptOutcome",
    "AuctionSnapshot",
    "AuctionStatus",
    "BidJob",
    "BidOutcome",
    "Clock",
    "DeterministicClock",
    "JobOutcome",
    "JobType",
    "PlaceBidJob",
    "SystemClock",
    "censor_display_name",
    "decode_job",
    "encode_job",
    "minimum_bid",
    "parse_job",
    "validate_bid",
]
