"""
Tests for auction_kernel.services.bid_processor -- transactional bid
application.

Uses a SQLite file database per test (no PostgreSQL required).  Row
locking is a no-op on SQLite; lock behavior is covered by the PostgreSQL
tests in tests/concurrency.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from auction_kernel.models import Bid, BidRelationship, JobReceipt
from auction_kernel.services.ledger_service import AuctionLedger


# =============================================================================
# Accepted bids
# =============================================================================


class TestAcceptedBid:

    def test_first_bid_at_starting_price(
        self, bid_processor, make_auction, make_user, bid_job, load_product, clock,
    ):
        product_id = make_auction(starting_price="500", bid_interval="50")
        bidder_id = make_user("Jane Doe")

        outcome = bid_processor.process(bid_job(product_id, bidder_id, 500))

        assert outcome.success
        assert outcome.bid_id is not None
        assert outcome.bidder_name == "Jane Doe"
        assert outcome.bid_time == clock.now()
        assert outcome.replayed is False
        assert load_product(product_id).current_bid == Decimal("500")

    def test_bid_row_and_relationships_written(
        self, bid_processor, make_auction, make_user, bid_job, database,
    ):
        product_id = make_auction()
        bidder_id = make_user()

        outcome = bid_processor.process(bid_job(product_id, bidder_id, 500, censor_name=True))

        with database.session_scope() as session:
            bid = session.get(Bid, outcome.bid_id)
            assert bid.amount == Decimal("500")
            assert bid.censor_name is True
            rels = {
                r.path: r
                for r in session.execute(
                    select(BidRelationship).where(BidRelationship.parent_id == bid.id)
                ).scalars()
            }
        assert set(rels) == {"product", "bidder"}
        assert rels["product"].products_id == product_id
        assert rels["bidder"].users_id == bidder_id

    def test_censored_name(self, bid_processor, make_auction, make_user, bid_job):
        product_id = make_auction()
        bidder_id = make_user("Jane Doe")

        outcome = bid_processor.process(bid_job(product_id, bidder_id, 500, censor_name=True))

        assert outcome.bidder_name == "J*** D***"

    def test_unknown_bidder_has_no_name(self, bid_processor, make_auction, bid_job):
        product_id = make_auction()

        outcome = bid_processor.process(bid_job(product_id, 999, 500))

        assert outcome.success
        assert outcome.bidder_name is None

    def test_receipt_recorded(self, bid_processor, make_auction, make_user, bid_job, database):
        product_id = make_auction()
        job = bid_job(product_id, make_user(), 500)

        outcome = bid_processor.process(job)

        with database.session_scope() as session:
            receipt = AuctionLedger(session).find_receipt(job.job_id)
            assert receipt.accepted
            assert receipt.bid_id == outcome.bid_id
            assert receipt.job_type == "bid"

    def test_amount_stored_at_cent_precision(
        self, bid_processor, make_auction, make_user, bid_job, load_product,
    ):
        product_id = make_auction()

        outcome = bid_processor.process(bid_job(product_id, make_user(), "500.005"))

        assert outcome.amount == Decimal("500.01")
        assert load_product(product_id).current_bid == Decimal("500.01")


# =============================================================================
# Rejections
# =============================================================================


class TestRejectedBid:

    def test_below_minimum(
        self, bid_processor, make_auction, make_user, bid_job, load_product, count_rows,
    ):
        product_id = make_auction(current_bid="500")

        outcome = bid_processor.process(bid_job(product_id, make_user(), 520))

        assert not outcome.success
        assert outcome.error == "Bid must be at least 550"
        assert outcome.error_code == "BID_TOO_LOW"
        assert load_product(product_id).current_bid == Decimal("500")
        assert count_rows(Bid) == 0

    @pytest.mark.parametrize("amount", ["549.995", "549.999", "549.9951"])
    def test_sub_cent_below_minimum_not_rounded_up(
        self, bid_processor, make_auction, make_user, bid_job, load_product, count_rows,
        amount,
    ):
        product_id = make_auction(current_bid="500")

        outcome = bid_processor.process(bid_job(product_id, make_user(), amount))

        assert not outcome.success
        assert outcome.error == "Bid must be at least 550"
        assert load_product(product_id).current_bid == Decimal("500")
        assert count_rows(Bid) == 0

    def test_product_not_found(self, bid_processor, make_user, bid_job):
        outcome = bid_processor.process(bid_job(404, make_user(), 500))

        assert not outcome.success
        assert outcome.error == "Product not found"
        assert outcome.error_code == "AUCTION_NOT_FOUND"

    def test_sold(self, bid_processor, make_auction, make_user, bid_job):
        product_id = make_auction(status="sold")

        outcome = bid_processor.process(bid_job(product_id, make_user(), 900))

        assert outcome.error == "Product is sold"

    def test_inactive(self, bid_processor, make_auction, make_user, bid_job):
        product_id = make_auction(active=False)

        outcome = bid_processor.process(bid_job(product_id, make_user(), 900))

        assert outcome.error == "Product is not active"

    def test_ended(self, bid_processor, make_auction, make_user, bid_job):
        product_id = make_auction(ends_in=timedelta(seconds=-1))

        outcome = bid_processor.process(bid_job(product_id, make_user(), 900))

        assert outcome.error == "Auction has ended"

    def test_ends_exactly_now(self, bid_processor, make_auction, make_user, bid_job):
        product_id = make_auction(ends_in=timedelta(0))

        outcome = bid_processor.process(bid_job(product_id, make_user(), 900))

        assert outcome.error_code == "AUCTION_ENDED"

    def test_rejection_receipt_recorded(
        self, bid_processor, make_auction, make_user, bid_job, database,
    ):
        product_id = make_auction(current_bid="500")
        job = bid_job(product_id, make_user(), 520)

        bid_processor.process(job)

        with database.session_scope() as session:
            receipt = AuctionLedger(session).find_receipt(job.job_id)
            assert not receipt.accepted
            assert receipt.reason_code == "BID_TOO_LOW"
            assert receipt.reason == "Bid must be at least 550"
            assert receipt.bid_id is None


# =============================================================================
# Idempotent replay
# =============================================================================


class TestReplay:

    def test_same_job_applied_once(
        self, bid_processor, make_auction, make_user, bid_job, count_rows, load_product,
    ):
        product_id = make_auction()
        job = bid_job(product_id, make_user("Jane Doe"), 500)

        first = bid_processor.process(job)
        second = bid_processor.process(job)

        assert second.success
        assert second.replayed
        assert second.bid_id == first.bid_id
        assert second.bidder_name == "Jane Doe"
        assert second.bid_time == first.bid_time
        assert count_rows(Bid) == 1
        assert count_rows(JobReceipt) == 1
        assert load_product(product_id).current_bid == Decimal("500")

    def test_replayed_rejection_keeps_reason(
        self, bid_processor, make_auction, make_user, bid_job,
    ):
        product_id = make_auction(current_bid="500")
        job = bid_job(product_id, make_user(), 520)

        bid_processor.process(job)
        again = bid_processor.process(job)

        assert not again.success
        assert again.replayed
        assert again.error == "Bid must be at least 550"

    def test_replay_ignores_later_state(
        self, bid_processor, make_auction, make_user, bid_job, count_rows,
    ):
        """A redelivered job is not re-validated against newer bids."""
        product_id = make_auction()
        bidder = make_user()
        first = bid_job(product_id, bidder, 500)

        bid_processor.process(first)
        bid_processor.process(bid_job(product_id, bidder, 600))
        again = bid_processor.process(first)

        assert again.success
        assert again.replayed
        assert count_rows(Bid) == 2


# =============================================================================
# Transient failures
# =============================================================================


class TestTransientFailure:

    def test_database_error_propagates_and_rolls_back(
        self, bid_processor, make_auction, make_user, bid_job, count_rows, load_product,
    ):
        product_id = make_auction()
        job = bid_job(product_id, make_user(), 500)

        with patch.object(
            AuctionLedger,
            "record_acceptance",
            side_effect=OperationalError("INSERT", {}, Exception("connection lost")),
        ):
            with pytest.raises(OperationalError):
                bid_processor.process(job)

        assert count_rows(Bid) == 0
        assert count_rows(JobReceipt) == 0
        assert load_product(product_id).current_bid is None

    def test_retry_after_failure_applies(
        self, bid_processor, make_auction, make_user, bid_job, count_rows,
    ):
        product_id = make_auction()
        job = bid_job(product_id, make_user(), 500)

        with patch.object(
            AuctionLedger,
            "record_acceptance",
            side_effect=OperationalError("INSERT", {}, Exception("connection lost")),
        ):
            with pytest.raises(OperationalError):
                bid_processor.process(job)

        outcome = bid_processor.process(job.with_retry_count(1))

        assert outcome.success
        assert not outcome.replayed
        assert count_rows(Bid) == 1
