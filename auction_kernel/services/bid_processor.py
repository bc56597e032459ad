"""
BidProcessor -- applies one place-bid job to the auction ledger.

Responsibility:
    Runs the Validating -> Accepted | Rejected state machine for a single
    bid inside one database transaction.  A transient failure is anything
    that escapes ``process()``; the worker's retry policy handles it.

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary
    (``Database.session_scope()``), delegates row access to AuctionLedger
    and the decision to the pure bidding rules.

Invariants enforced:
    - The auction row is locked (``SELECT ... FOR UPDATE``) before it is
      read, so concurrent bids on one auction apply one at a time.
    - current_bid is set to the new bid's amount in the same transaction
      as the bid insert.
    - A job id is applied at most once: a receipt found under the lock is
      replayed without writing.
    - A rejection commits only its receipt.  No bid row, no current_bid
      change.

Failure modes:
    - OperationalError / DBAPIError (connection loss, serialization or
      lock failures) propagate after rollback.  Nothing was written.
"""

from decimal import Decimal

from auction_kernel.db.engine import Database
from auction_kernel.db.types import as_utc, round_money
from auction_kernel.domain.bidding import validate_bid
from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.domain.jobs import PlaceBidJob
from auction_kernel.domain.outcomes import BidOutcome
from auction_kernel.exceptions import AuctionNotFoundError, BidValidationError
from auction_kernel.logging_config import get_logger
from auction_kernel.models.receipt import JobReceipt
from auction_kernel.services.ledger_service import AuctionLedger

logger = get_logger("services.bid_processor")


class BidProcessor:
    """
    Transactional bid application.

    Contract:
        ``process()`` returns a BidOutcome for every terminal result
        (accepted, rejected, or replayed) and raises for anything else.
    """

    def __init__(self, database: Database, clock: Clock | None = None):
        self._database = database
        self._clock = clock or SystemClock()

    def process(self, job: PlaceBidJob) -> BidOutcome:
        amount = round_money(job.amount)

        with self._database.session_scope() as session:
            ledger = AuctionLedger(session, self._clock)
            product = ledger.lock_auction(job.product_id)

            receipt = ledger.find_receipt(job.job_id)
            if receipt is not None:
                return self._replay(ledger, job, receipt)

            try:
                if product is None:
                    raise AuctionNotFoundError(job.product_id)
                # Unrounded: 549.995 must not round up to a 550 minimum
                floor = validate_bid(product.to_snapshot(), job.amount, self._clock.now())
            except BidValidationError as exc:
                ledger.record_rejection(job, amount, exc)
                logger.info(
                    "bid_rejected",
                    extra={
                        "reason_code": exc.code,
                        "reason": str(exc),
                        "amount": amount,
                    },
                )
                return BidOutcome.rejected(
                    job.job_id, job.product_id, job.bidder_id, amount, exc
                )

            previous_bid = product.current_bid
            bid = ledger.insert_bid(product, job.bidder_id, amount, job.censor_name)
            product.current_bid = amount
            ledger.record_acceptance(job, amount, bid_id=bid.id)
            bidder_name = ledger.bidder_display_name(job.bidder_id, job.censor_name)

            outcome = BidOutcome(
                job_id=job.job_id,
                product_id=job.product_id,
                bidder_id=job.bidder_id,
                amount=amount,
                success=True,
                bid_id=bid.id,
                bidder_name=bidder_name,
                bid_time=as_utc(bid.bid_time),
            )

        logger.info(
            "bid_accepted",
            extra={
                "bid_id": outcome.bid_id,
                "amount": amount,
                "minimum_bid": floor,
                "previous_bid": previous_bid,
            },
        )
        return outcome

    def _replay(
        self, ledger: AuctionLedger, job: PlaceBidJob, receipt: JobReceipt
    ) -> BidOutcome:
        logger.info(
            "bid_job_replayed",
            extra={"outcome": receipt.outcome, "bid_id": receipt.bid_id},
        )
        if not receipt.accepted:
            return BidOutcome(
                job_id=job.job_id,
                product_id=receipt.product_id,
                bidder_id=receipt.bidder_id,
                amount=Decimal(receipt.amount),
                success=False,
                error_code=receipt.reason_code,
                error=receipt.reason,
                replayed=True,
            )

        bid = ledger.get_bid(receipt.bid_id)
        return BidOutcome(
            job_id=job.job_id,
            product_id=receipt.product_id,
            bidder_id=receipt.bidder_id,
            amount=Decimal(receipt.amount),
            success=True,
            bid_id=receipt.bid_id,
            bidder_name=ledger.bidder_display_name(
                receipt.bidder_id, bool(bid.censor_name) if bid else job.censor_name
            ),
            bid_time=as_utc(bid.bid_time) if bid else None,
            replayed=True,
        )
