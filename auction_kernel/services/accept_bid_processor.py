"""
AcceptBidProcessor -- closes an auction and creates its settlement records.

Responsibility:
    Runs the Validating -> Accepted | Rejected state machine for a seller
    accepting a bid: marks the auction sold, then writes the seller -> buyer
    message and the pending sale transaction, all in one database
    transaction.  After commit it notifies the buyer, best effort.

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary.
    The buyer notification goes through an injected MessageNotifier so the
    kernel does not depend on the worker's Redis publisher.

Invariants enforced:
    - status moves available -> sold at most once.  A second acceptance
      locks the same row after the first commits, sees ``sold`` and is
      rejected with ``Product is sold``.
    - Exactly one message and one transaction per sold auction: both are
      written in the transaction that flips the status.
    - A notification failure never rolls back the committed sale.

Failure modes:
    - Database errors propagate after rollback (transient, retried).
    - Notifier errors are logged and swallowed.
"""

from decimal import Decimal
from typing import Protocol

from auction_kernel.db.engine import Database
from auction_kernel.db.types import money_to_json, round_money
from auction_kernel.domain.bidding import AuctionStatus
from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.domain.jobs import AcceptBidJob
from auction_kernel.domain.outcomes import AcceptOutcome
from auction_kernel.exceptions import (
    AuctionNotAvailableError,
    AuctionNotFoundError,
    BidValidationError,
)
from auction_kernel.logging_config import get_logger
from auction_kernel.models.receipt import JobReceipt
from auction_kernel.services.ledger_service import AuctionLedger

logger = get_logger("services.accept_bid_processor")


class MessageNotifier(Protocol):
    """Anything that can tell a user a new message arrived."""

    def publish_message_notification(
        self,
        user_id: int,
        message_id: int,
        product_id: int,
        sender_id: int,
        text: str,
    ) -> bool:
        ...


def acceptance_message(title: str) -> str:
    return (
        f'Congratulations! Your bid has been accepted for "{title}". '
        "Let's discuss the next steps for completing this transaction."
    )


def transaction_notes(title: str, amount: Decimal) -> str:
    return f'Transaction created for "{title}" with winning bid of {money_to_json(amount)}'


class AcceptBidProcessor:
    """
    Transactional sale of an auction to its winning bidder.

    Contract:
        ``process()`` returns an AcceptOutcome for every terminal result
        and raises for anything else.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock | None = None,
        notifier: MessageNotifier | None = None,
    ):
        self._database = database
        self._clock = clock or SystemClock()
        self._notifier = notifier

    def process(self, job: AcceptBidJob) -> AcceptOutcome:
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
                if product.status != AuctionStatus.AVAILABLE.value:
                    raise AuctionNotAvailableError(job.product_id, product.status)
            except BidValidationError as exc:
                ledger.record_rejection(job, amount, exc)
                logger.info(
                    "accept_bid_rejected",
                    extra={"reason_code": exc.code, "reason": str(exc)},
                )
                return AcceptOutcome.rejected(
                    job.job_id,
                    job.product_id,
                    job.seller_id,
                    job.bidder_id,
                    amount,
                    exc,
                )

            product.status = AuctionStatus.SOLD.value
            message, transaction = ledger.create_settlement(
                product,
                seller_id=job.seller_id,
                buyer_id=job.bidder_id,
                amount=amount,
                message_text=acceptance_message(product.title),
                notes=transaction_notes(product.title, amount),
            )
            ledger.record_acceptance(
                job,
                amount,
                message_id=message.id,
                transaction_id=transaction.id,
            )

            outcome = AcceptOutcome(
                job_id=job.job_id,
                product_id=job.product_id,
                seller_id=job.seller_id,
                winner_id=job.bidder_id,
                amount=amount,
                success=True,
                message_id=message.id,
                transaction_id=transaction.id,
                message_text=message.message,
            )

        logger.info(
            "auction_sold",
            extra={
                "amount": amount,
                "winner_id": job.bidder_id,
                "seller_id": job.seller_id,
                "message_id": outcome.message_id,
                "transaction_id": outcome.transaction_id,
            },
        )
        self._notify_buyer(outcome)
        return outcome

    def _notify_buyer(self, outcome: AcceptOutcome) -> None:
        if self._notifier is None or outcome.message_id is None:
            return
        try:
            self._notifier.publish_message_notification(
                user_id=outcome.winner_id,
                message_id=outcome.message_id,
                product_id=outcome.product_id,
                sender_id=outcome.seller_id,
                text=outcome.message_text or "",
            )
        except Exception:
            # The sale is committed; a lost notification is recovered by polling
            logger.warning(
                "buyer_notification_failed",
                extra={"message_id": outcome.message_id},
                exc_info=True,
            )

    def _replay(
        self, ledger: AuctionLedger, job: AcceptBidJob, receipt: JobReceipt
    ) -> AcceptOutcome:
        logger.info(
            "accept_bid_job_replayed",
            extra={"outcome": receipt.outcome, "message_id": receipt.message_id},
        )
        if not receipt.accepted:
            return AcceptOutcome(
                job_id=job.job_id,
                product_id=receipt.product_id,
                seller_id=job.seller_id,
                winner_id=receipt.bidder_id,
                amount=Decimal(receipt.amount),
                success=False,
                error_code=receipt.reason_code,
                error=receipt.reason,
                replayed=True,
            )

        message = ledger.get_message(receipt.message_id)
        return AcceptOutcome(
            job_id=job.job_id,
            product_id=receipt.product_id,
            seller_id=job.seller_id,
            winner_id=receipt.bidder_id,
            amount=Decimal(receipt.amount),
            success=True,
            message_id=receipt.message_id,
            transaction_id=receipt.transaction_id,
            message_text=message.message if message else None,
            replayed=True,
        )
