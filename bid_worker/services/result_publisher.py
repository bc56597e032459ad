"""
ResultPublisher -- best-effort fan-out of job outcomes over Redis pub/sub.

Responsibility:
    Publishes one JSON event per terminal or dead-lettered outcome on the
    auction's channel, and buyer notifications on the user's channel.

Architecture position:
    Worker > Services.  Implements the kernel's ``MessageNotifier`` so the
    accept-bid processor can notify the buyer after commit.

Invariants enforced:
    - Channels are ``<prefix>:product:<id>`` and ``<prefix>:user:<id>``.
    - Every event carries ``type`` and ``timestamp`` (epoch ms).
    - Amounts are JSON numbers; bid times are ISO-8601 strings.

Failure modes:
    - Publish errors are logged and reported as False, never raised.
      Delivery is at-most-once; subscribers fall back to polling.
"""

from __future__ import annotations

import json
from typing import Any

import redis

from auction_kernel.db.types import money_to_json
from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.domain.jobs import AcceptBidJob, BidJob
from auction_kernel.domain.outcomes import AcceptOutcome, BidOutcome
from auction_kernel.logging_config import get_logger

logger = get_logger("worker.result_publisher")

GENERIC_FAILURE_MESSAGE = "Bid processing failed. Please try again."
PREVIEW_LENGTH = 50


def message_preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


class ResultPublisher:
    """Publishes result events; every method is fire-and-forget."""

    def __init__(
        self,
        client: redis.Redis,
        clock: Clock | None = None,
        channel_prefix: str = "sse",
    ):
        self._client = client
        self._clock = clock or SystemClock()
        self._prefix = channel_prefix

    @classmethod
    def from_url(cls, redis_url: str, **kwargs: Any) -> ResultPublisher:
        return cls(redis.from_url(redis_url, decode_responses=True), **kwargs)

    def product_channel(self, product_id: int) -> str:
        return f"{self._prefix}:product:{product_id}"

    def user_channel(self, user_id: int) -> str:
        return f"{self._prefix}:user:{user_id}"

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def publish_bid_result(self, outcome: BidOutcome) -> bool:
        event: dict[str, Any] = {
            "type": "bid",
            "success": outcome.success,
            "amount": money_to_json(outcome.amount),
            "bidderId": outcome.bidder_id,
        }
        if outcome.success:
            event["bidId"] = outcome.bid_id
            event["bidderName"] = outcome.bidder_name
            event["bidTime"] = outcome.bid_time.isoformat() if outcome.bid_time else None
        else:
            event["error"] = outcome.error
        return self._publish(self.product_channel(outcome.product_id), event)

    def publish_accept_result(self, outcome: AcceptOutcome) -> bool:
        event: dict[str, Any] = {
            "type": "accepted",
            "status": "sold",
            "success": outcome.success,
        }
        if outcome.success:
            event["winnerId"] = outcome.winner_id
            event["amount"] = money_to_json(outcome.amount)
        else:
            event["error"] = outcome.error
        return self._publish(self.product_channel(outcome.product_id), event)

    def publish_message_notification(
        self,
        user_id: int,
        message_id: int,
        product_id: int,
        sender_id: int,
        text: str,
    ) -> bool:
        event = {
            "type": "new_message",
            "messageId": message_id,
            "productId": product_id,
            "senderId": sender_id,
            "preview": message_preview(text),
        }
        return self._publish(self.user_channel(user_id), event)

    def publish_failure(self, job: BidJob, error: str = GENERIC_FAILURE_MESSAGE) -> bool:
        """Tell subscribers a job was dead-lettered."""
        if isinstance(job, AcceptBidJob):
            event: dict[str, Any] = {
                "type": "accepted",
                "status": "sold",
                "success": False,
                "error": error,
            }
        else:
            event = {
                "type": "bid",
                "success": False,
                "error": error,
                "amount": money_to_json(job.amount),
                "bidderId": job.bidder_id,
            }
        return self._publish(self.product_channel(job.product_id), event)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _publish(self, channel: str, event: dict[str, Any]) -> bool:
        event["timestamp"] = self._clock.now_ms()
        try:
            receivers = self._client.publish(channel, json.dumps(event))
        except redis.RedisError:
            logger.warning(
                "result_publish_failed",
                extra={"channel": channel, "event_type": event["type"]},
                exc_info=True,
            )
            return False
        logger.debug(
            "result_published",
            extra={"channel": channel, "event_type": event["type"], "receivers": receivers},
        )
        return True

    def close(self) -> None:
        self._client.close()
