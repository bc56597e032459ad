"""
AuctionLedger -- session-bound reads and writes on the auction ledger.

Responsibility:
    Locks auction rows, looks up and writes job receipts, and inserts the
    rows a processed job creates (bids, settlement messages and
    transactions, with their relationship rows).

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the bid and
    accept-bid processors, which own the transaction boundary.

Invariants enforced:
    - Flush-only: this class never commits or rolls back.  The processor's
      ``session_scope()`` decides.
    - ``lock_auction()`` always issues ``SELECT ... FOR UPDATE`` with
      ``populate_existing`` so the identity map never hides a concurrent
      writer's committed values.
    - Receipts are looked up after the auction lock is held, so two
      deliveries of one job id are serialized on the same row.

Failure modes:
    - IntegrityError from a duplicate receipt insert (two workers, same job
      id, auction row missing so nothing serialized them).  Propagates; the
      worker retries and the retry replays the winner's receipt.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from auction_kernel.domain.bidding import censor_display_name
from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.domain.jobs import BidJob
from auction_kernel.exceptions import BidValidationError
from auction_kernel.logging_config import get_logger
from auction_kernel.models.auction import Product
from auction_kernel.models.bid import BID_BIDDER_PATH, BID_PRODUCT_PATH, Bid, BidRelationship
from auction_kernel.models.receipt import JobReceipt, ReceiptOutcome
from auction_kernel.models.settlement import (
    BUYER_PATH,
    PRODUCT_PATH,
    RECEIVER_PATH,
    SELLER_PATH,
    SENDER_PATH,
    Message,
    MessageRelationship,
    Transaction,
    TransactionRelationship,
    TransactionStatus,
)
from auction_kernel.models.user import User

logger = get_logger("services.ledger")


class AuctionLedger:
    """
    Ledger operations bound to one session.

    Contract:
        Construct one per processing transaction.  Every write is flushed
        so generated ids are available before commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def lock_auction(self, product_id: int) -> Product | None:
        """Load the auction row under ``SELECT ... FOR UPDATE``."""
        return self._session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # =========================================================================
    # Receipts
    # =========================================================================

    def find_receipt(self, job_id: str) -> JobReceipt | None:
        return self._session.execute(
            select(JobReceipt).where(JobReceipt.job_id == job_id)
        ).scalar_one_or_none()

    def record_acceptance(
        self,
        job: BidJob,
        amount: Decimal,
        bid_id: int | None = None,
        message_id: int | None = None,
        transaction_id: int | None = None,
    ) -> JobReceipt:
        receipt = JobReceipt(
            job_id=job.job_id,
            job_type=job.job_type.value,
            product_id=job.product_id,
            bidder_id=job.bidder_id,
            amount=amount,
            outcome=ReceiptOutcome.ACCEPTED.value,
            bid_id=bid_id,
            message_id=message_id,
            transaction_id=transaction_id,
            processed_at=self._clock.now(),
        )
        self._session.add(receipt)
        self._session.flush()
        return receipt

    def record_rejection(
        self, job: BidJob, amount: Decimal, exc: BidValidationError
    ) -> JobReceipt:
        receipt = JobReceipt(
            job_id=job.job_id,
            job_type=job.job_type.value,
            product_id=job.product_id,
            bidder_id=job.bidder_id,
            amount=amount,
            outcome=ReceiptOutcome.REJECTED.value,
            reason_code=exc.code,
            reason=str(exc)[:500],
            processed_at=self._clock.now(),
        )
        self._session.add(receipt)
        self._session.flush()
        return receipt

    # =========================================================================
    # Bids
    # =========================================================================

    def insert_bid(
        self,
        product: Product,
        bidder_id: int,
        amount: Decimal,
        censor_name: bool,
    ) -> Bid:
        """Insert a bid with its product and bidder relationship rows."""
        bid = Bid(
            amount=amount,
            bid_time=self._clock.now(),
            censor_name=censor_name,
        )
        bid.rels = [
            BidRelationship(path=BID_PRODUCT_PATH, products_id=product.id),
            BidRelationship(path=BID_BIDDER_PATH, users_id=bidder_id),
        ]
        self._session.add(bid)
        self._session.flush()
        logger.debug(
            "bid_inserted",
            extra={"bid_id": bid.id, "product_id": product.id},
        )
        return bid

    def get_bid(self, bid_id: int | None) -> Bid | None:
        if bid_id is None:
            return None
        return self._session.get(Bid, bid_id)

    def bidder_display_name(self, user_id: int, censor: bool) -> str | None:
        """The name shown next to a bid; None when the user row is missing."""
        name = self._session.execute(
            select(User.name).where(User.id == user_id)
        ).scalar_one_or_none()
        return censor_display_name(name) if censor else name

    # =========================================================================
    # Settlement
    # =========================================================================

    def create_settlement(
        self,
        product: Product,
        seller_id: int,
        buyer_id: int,
        amount: Decimal,
        message_text: str,
        notes: str | None = None,
    ) -> tuple[Message, Transaction]:
        """Create the sale message (seller -> buyer) and pending transaction."""
        message = Message(message=message_text, read=False)
        message.rels = [
            MessageRelationship(path=PRODUCT_PATH, products_id=product.id),
            MessageRelationship(path=SENDER_PATH, users_id=seller_id),
            MessageRelationship(path=RECEIVER_PATH, users_id=buyer_id),
        ]

        transaction = Transaction(
            amount=amount,
            status=TransactionStatus.PENDING.value,
            notes=notes,
        )
        transaction.rels = [
            TransactionRelationship(path=PRODUCT_PATH, products_id=product.id),
            TransactionRelationship(path=SELLER_PATH, users_id=seller_id),
            TransactionRelationship(path=BUYER_PATH, users_id=buyer_id),
        ]

        self._session.add_all([message, transaction])
        self._session.flush()
        return message, transaction

    def get_message(self, message_id: int | None) -> Message | None:
        if message_id is None:
            return None
        return self._session.get(Message, message_id)
