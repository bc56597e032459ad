"""
Tests for auction_kernel.domain.jobs -- payload parsing at the dispatch
boundary.
"""

import json
from decimal import Decimal

import pytest

from auction_kernel.domain.jobs import (
    AcceptBidJob,
    JobType,
    MAX_TIMESTAMP_MS,
    PlaceBidJob,
    decode_job,
    encode_job,
    parse_job,
)
from auction_kernel.exceptions import JobPayloadError


def _fixed_id() -> str:
    return "generated-1"


BASE = {
    "productId": 7,
    "bidderId": 3,
    "amount": 550,
    "timestamp": 1704110400000,
}


# =============================================================================
# decode_job
# =============================================================================


class TestDecodeJob:

    def test_object_decoded(self):
        assert decode_job('{"productId": 1}') == {"productId": 1}

    def test_bytes_accepted(self):
        assert decode_job(b'{"productId": 1}') == {"productId": 1}

    def test_invalid_json_rejected(self):
        with pytest.raises(JobPayloadError) as exc_info:
            decode_job("{not json")
        assert exc_info.value.raw_payload == "{not json"

    def test_non_object_rejected(self):
        with pytest.raises(JobPayloadError, match="not a JSON object"):
            decode_job("[1, 2, 3]")


# =============================================================================
# parse_job
# =============================================================================


class TestParseJob:

    def test_missing_type_means_bid(self):
        job = parse_job(dict(BASE, jobId="j-1"), _fixed_id)

        assert isinstance(job, PlaceBidJob)
        assert job.job_type is JobType.BID
        assert job.job_id == "j-1"
        assert job.amount == Decimal("550")
        assert job.censor_name is False
        assert job.retry_count == 0

    def test_accept_bid_parsed(self):
        job = parse_job(dict(BASE, type="accept_bid", sellerId=9), _fixed_id)

        assert isinstance(job, AcceptBidJob)
        assert job.seller_id == 9
        assert job.bidder_id == 3

    def test_accept_bid_requires_seller(self):
        with pytest.raises(JobPayloadError, match="sellerId"):
            parse_job(dict(BASE, type="accept_bid"), _fixed_id)

    def test_unknown_type_rejected(self):
        with pytest.raises(JobPayloadError, match="unknown job type"):
            parse_job(dict(BASE, type="refund"), _fixed_id)

    def test_missing_job_id_assigned(self):
        job = parse_job(dict(BASE), _fixed_id)
        assert job.job_id == "generated-1"

    def test_empty_job_id_assigned(self):
        job = parse_job(dict(BASE, jobId=""), _fixed_id)
        assert job.job_id == "generated-1"

    def test_non_string_job_id_rejected(self):
        with pytest.raises(JobPayloadError, match="jobId"):
            parse_job(dict(BASE, jobId=12), _fixed_id)

    @pytest.mark.parametrize("field", ["productId", "bidderId", "amount", "timestamp"])
    def test_required_fields(self, field):
        data = dict(BASE)
        del data[field]
        with pytest.raises(JobPayloadError, match=field):
            parse_job(data, _fixed_id)

    def test_float_amount_kept_exact(self):
        job = parse_job(dict(BASE, amount=520.1), _fixed_id)
        assert job.amount == Decimal("520.1")

    def test_string_amount_accepted(self):
        job = parse_job(dict(BASE, amount="600.50"), _fixed_id)
        assert job.amount == Decimal("600.50")

    @pytest.mark.parametrize("amount", ["abc", True, "NaN", "Infinity"])
    def test_bad_amount_rejected(self, amount):
        with pytest.raises(JobPayloadError):
            parse_job(dict(BASE, amount=amount), _fixed_id)

    def test_integral_float_ids_accepted(self):
        job = parse_job(dict(BASE, productId=7.0), _fixed_id)
        assert job.product_id == 7

    @pytest.mark.parametrize("value", ["7", True, 7.5])
    def test_bad_int_rejected(self, value):
        with pytest.raises(JobPayloadError, match="productId"):
            parse_job(dict(BASE, productId=value), _fixed_id)

    def test_negative_retry_count_rejected(self):
        with pytest.raises(JobPayloadError, match="retryCount"):
            parse_job(dict(BASE, retryCount=-1), _fixed_id)

    @pytest.mark.parametrize("value", [-1, 10**20, MAX_TIMESTAMP_MS + 1])
    def test_timestamp_out_of_range_rejected(self, value):
        with pytest.raises(JobPayloadError, match="timestamp out of range"):
            parse_job(dict(BASE, timestamp=value), _fixed_id)

    def test_latest_timestamp_accepted(self):
        job = parse_job(dict(BASE, timestamp=MAX_TIMESTAMP_MS), _fixed_id)
        assert job.timestamp == MAX_TIMESTAMP_MS

    def test_censor_name_must_be_bool(self):
        with pytest.raises(JobPayloadError, match="censorName"):
            parse_job(dict(BASE, censorName="yes"), _fixed_id)

    def test_null_optionals_take_defaults(self):
        job = parse_job(dict(BASE, censorName=None, retryCount=None), _fixed_id)
        assert job.censor_name is False
        assert job.retry_count == 0


# =============================================================================
# encode_job
# =============================================================================


class TestEncodeJob:

    def test_bid_payload_shape(self):
        job = PlaceBidJob(
            job_id="j-1",
            product_id=7,
            bidder_id=3,
            amount=Decimal("550.00"),
            timestamp=1704110400000,
            censor_name=True,
            retry_count=2,
        )

        assert json.loads(encode_job(job)) == {
            "type": "bid",
            "jobId": "j-1",
            "productId": 7,
            "bidderId": 3,
            "amount": 550,
            "timestamp": 1704110400000,
            "censorName": True,
            "retryCount": 2,
        }

    def test_accept_payload_carries_seller(self):
        job = AcceptBidJob(
            job_id="a-1",
            product_id=7,
            bidder_id=3,
            seller_id=9,
            amount=Decimal("550.50"),
            timestamp=1704110400000,
        )

        payload = json.loads(encode_job(job))
        assert payload["type"] == "accept_bid"
        assert payload["sellerId"] == 9
        assert payload["amount"] == 550.5

    def test_encoded_job_parses_back(self):
        job = PlaceBidJob("j-1", 7, 3, Decimal("520.10"), 1704110400000, retry_count=1)

        again = parse_job(decode_job(encode_job(job)), _fixed_id)
        assert again == job

    def test_with_retry_count_returns_copy(self):
        job = PlaceBidJob("j-1", 7, 3, Decimal("500"), 1704110400000)

        bumped = job.with_retry_count(2)
        assert bumped.retry_count == 2
        assert job.retry_count == 0
