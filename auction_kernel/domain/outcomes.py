"""
auction_kernel.domain.outcomes -- Processor results.  ZERO I/O.

A processor either returns one of these outcomes (accepted or rejected, both
terminal) or raises (transient, the worker decides whether to retry).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from auction_kernel.exceptions import BidValidationError


@dataclass(frozen=True)
class BidOutcome:
    """Result of applying one place-bid job."""

    job_id: str
    product_id: int
    bidder_id: int
    amount: Decimal
    success: bool
    bid_id: int | None = None
    bidder_name: str | None = None
    bid_time: datetime | None = None
    error_code: str | None = None
    error: str | None = None
    replayed: bool = False

    @classmethod
    def rejected(
        cls,
        job_id: str,
        product_id: int,
        bidder_id: int,
        amount: Decimal,
        exc: BidValidationError,
    ) -> BidOutcome:
        return cls(
            job_id=job_id,
            product_id=product_id,
            bidder_id=bidder_id,
            amount=amount,
            success=False,
            error_code=exc.code,
            error=str(exc),
        )


@dataclass(frozen=True)
class AcceptOutcome:
    """Result of applying one accept-bid job."""

    job_id: str
    product_id: int
    seller_id: int
    winner_id: int
    amount: Decimal
    success: bool
    message_id: int | None = None
    transaction_id: int | None = None
    message_text: str | None = None
    error_code: str | None = None
    error: str | None = None
    replayed: bool = False

    @classmethod
    def rejected(
        cls,
        job_id: str,
        product_id: int,
        seller_id: int,
        winner_id: int,
        amount: Decimal,
        exc: BidValidationError,
    ) -> AcceptOutcome:
        return cls(
            job_id=job_id,
            product_id=product_id,
            seller_id=seller_id,
            winner_id=winner_id,
            amount=amount,
            success=False,
            error_code=exc.code,
            error=str(exc),
        )


JobOutcome = BidOutcome | AcceptOutcome
