"""
auction_kernel.domain.jobs -- Typed queue jobs.  ZERO I/O.

A queue payload is parsed exactly once, at the dispatch boundary, into one
of two frozen dataclasses keyed by ``type``.  Downstream processors only
ever see fully-typed jobs.

Wire format (camelCase, as pushed by the web API):

    { type?: "bid" | "accept_bid", productId: int, bidderId: int,
      amount: number, timestamp: epoch_ms, censorName?: bool,
      retryCount?: int, jobId?: string, sellerId?: int }

A missing ``type`` means ``bid``: producers that predate accept jobs never
sent the field.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Union

from auction_kernel.db.types import money_from_value, money_to_json
from auction_kernel.exceptions import JobPayloadError

# 9999-12-31T23:59:59.999Z, the last instant a datetime can hold
MAX_TIMESTAMP_MS = 253_402_300_799_999


class JobType(str, Enum):
    """Discriminant of the queue message."""

    BID = "bid"
    ACCEPT_BID = "accept_bid"


@dataclass(frozen=True)
class PlaceBidJob:
    """Place ``amount`` on auction ``product_id`` on behalf of ``bidder_id``."""

    job_id: str
    product_id: int
    bidder_id: int
    amount: Decimal
    timestamp: int
    censor_name: bool = False
    retry_count: int = 0

    @property
    def job_type(self) -> JobType:
        return JobType.BID

    def with_retry_count(self, retry_count: int) -> PlaceBidJob:
        return replace(self, retry_count=retry_count)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.job_type.value,
            "jobId": self.job_id,
            "productId": self.product_id,
            "bidderId": self.bidder_id,
            "amount": money_to_json(self.amount),
            "timestamp": self.timestamp,
            "censorName": self.censor_name,
            "retryCount": self.retry_count,
        }


@dataclass(frozen=True)
class AcceptBidJob:
    """Seller ``seller_id`` accepts ``bidder_id``'s bid of ``amount``.

    ``bidder_id`` is the winning bidder (the buyer).
    """

    job_id: str
    product_id: int
    bidder_id: int
    seller_id: int
    amount: Decimal
    timestamp: int
    censor_name: bool = False
    retry_count: int = 0

    @property
    def job_type(self) -> JobType:
        return JobType.ACCEPT_BID

    def with_retry_count(self, retry_count: int) -> AcceptBidJob:
        return replace(self, retry_count=retry_count)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.job_type.value,
            "jobId": self.job_id,
            "productId": self.product_id,
            "bidderId": self.bidder_id,
            "sellerId": self.seller_id,
            "amount": money_to_json(self.amount),
            "timestamp": self.timestamp,
            "censorName": self.censor_name,
            "retryCount": self.retry_count,
        }


BidJob = Union[PlaceBidJob, AcceptBidJob]


def encode_job(job: BidJob) -> str:
    """Serialize a job back to its queue payload."""
    return json.dumps(job.to_payload(), separators=(",", ":"))


def decode_job(raw: str | bytes) -> dict[str, Any]:
    """Decode a raw queue payload into a JSON object.

    Raises:
        JobPayloadError: If the payload is not a JSON object.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise JobPayloadError(f"not valid JSON ({exc})", raw_payload=text) from None
    if not isinstance(data, dict):
        raise JobPayloadError("payload is not a JSON object", raw_payload=text)
    return data


def parse_job(
    data: dict[str, Any],
    job_id_factory: Callable[[], str],
) -> BidJob:
    """
    Validate a decoded payload and build the typed job.

    Preconditions:
        ``data`` came from ``decode_job``.

    Postconditions:
        The returned job has a job id (``job_id_factory`` is called when
        the payload carries none) and a non-negative retry count.

    Raises:
        JobPayloadError: Unknown ``type``, missing field, or bad field type.
    """
    raw_type = data.get("type") or JobType.BID.value
    try:
        job_type = JobType(raw_type)
    except ValueError:
        raise JobPayloadError(f"unknown job type {raw_type!r}") from None

    job_id = data.get("jobId")
    if job_id is None or job_id == "":
        job_id = job_id_factory()
    elif not isinstance(job_id, str):
        raise JobPayloadError("jobId must be a string")

    common = dict(
        job_id=job_id,
        product_id=_require_int(data, "productId"),
        bidder_id=_require_int(data, "bidderId"),
        amount=_require_amount(data),
        timestamp=_require_timestamp(data),
        censor_name=_optional_bool(data, "censorName"),
        retry_count=_optional_int(data, "retryCount"),
    )

    if job_type is JobType.ACCEPT_BID:
        return AcceptBidJob(seller_id=_require_int(data, "sellerId"), **common)
    return PlaceBidJob(**common)


def _require_int(data: dict[str, Any], key: str) -> int:
    if key not in data or data[key] is None:
        raise JobPayloadError(f"missing field {key}")
    value = data[key]
    # JSON numbers like 1700000000000.0 are accepted; bools and strings are not
    if isinstance(value, bool):
        raise JobPayloadError(f"{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise JobPayloadError(f"{key} must be an integer")
    return value


def _require_timestamp(data: dict[str, Any]) -> int:
    value = _require_int(data, "timestamp")
    if not 0 <= value <= MAX_TIMESTAMP_MS:
        raise JobPayloadError(f"timestamp out of range: {value}")
    return value


def _optional_int(data: dict[str, Any], key: str) -> int:
    if data.get(key) is None:
        return 0
    value = _require_int(data, key)
    if value < 0:
        raise JobPayloadError(f"{key} must not be negative")
    return value


def _optional_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise JobPayloadError(f"{key} must be a boolean")
    return value


def _require_amount(data: dict[str, Any]) -> Decimal:
    if data.get("amount") is None:
        raise JobPayloadError("missing field amount")
    try:
        return money_from_value(data["amount"])
    except ValueError as exc:
        raise JobPayloadError(str(exc)) from None
