"""
RedisJobQueue -- the durable work queue and its dead-letter sink.

Responsibility:
    Blocking pops from the work queue (one or two Redis lists), pushes of
    requeued jobs, and the dead-letter list with its inspection and replay
    operations.

Architecture position:
    Worker > Services -- the only module that issues Redis list commands.

Invariants enforced:
    - Jobs are appended with RPUSH and taken with BLPOP, so each list is
      FIFO.  A requeued job goes to the back of its queue.
    - Dead-letter entries are the job payload plus ``error`` and
      ``failedAt`` (epoch ms).
    - ``push_dead_letter()`` never raises: the job's fate is already
      decided, losing the dead-letter copy is logged instead.

Failure modes:
    - ``pop()`` and ``push()`` raise ``redis.RedisError`` on connection
      loss.  The worker loop waits and reconnects.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

import redis

from auction_kernel.domain.clock import Clock, SystemClock
from auction_kernel.logging_config import get_logger

logger = get_logger("worker.job_queue")

DEAD_LETTER_FIELDS = ("error", "failedAt")


class RedisJobQueue:
    """
    Work queue and dead-letter list backed by Redis lists.

    Contract:
        ``pop()`` returns ``(key, payload)`` or None when the timeout
        passes with nothing queued.  Payloads are returned as ``str``.
    """

    def __init__(
        self,
        client: redis.Redis,
        queue_key: str = "bids:pending",
        dead_letter_key: str = "bids:failed",
        extra_queue_keys: Sequence[str] = (),
        clock: Clock | None = None,
    ):
        self._client = client
        self._queue_key = queue_key
        self._dead_letter_key = dead_letter_key
        self._pop_keys = [queue_key] + [k for k in extra_queue_keys if k != queue_key]
        self._clock = clock or SystemClock()

    @classmethod
    def from_url(cls, redis_url: str, **kwargs: Any) -> RedisJobQueue:
        return cls(redis.from_url(redis_url, decode_responses=True), **kwargs)

    @property
    def queue_key(self) -> str:
        return self._queue_key

    @property
    def dead_letter_key(self) -> str:
        return self._dead_letter_key

    def pop(self, timeout: int = 5) -> tuple[str, str] | None:
        """Block up to ``timeout`` seconds for the next job."""
        result = self._client.blpop(self._pop_keys, timeout=timeout)
        if result is None:
            return None
        key, payload = result
        return _text(key), _text(payload)

    def push(self, payload: str, key: str | None = None) -> None:
        self._client.rpush(key or self._queue_key, payload)

    def push_dead_letter(self, payload: dict[str, Any], error: str) -> bool:
        entry = dict(payload)
        entry["error"] = error
        entry["failedAt"] = self._clock.now_ms()
        try:
            self._client.rpush(self._dead_letter_key, json.dumps(entry, default=str))
        except redis.RedisError:
            logger.error(
                "dead_letter_push_failed",
                extra={"dead_letter_key": self._dead_letter_key, "error": error},
                exc_info=True,
            )
            return False
        return True

    def length(self, key: str | None = None) -> int:
        return int(self._client.llen(key or self._queue_key))

    def list_dead_letters(self, limit: int = 100) -> list[dict[str, Any]]:
        """Dead-lettered entries, oldest first, without removing them."""
        if limit <= 0:
            return []
        raw_entries = self._client.lrange(self._dead_letter_key, 0, limit - 1)
        entries = []
        for raw in raw_entries:
            try:
                entries.append(json.loads(_text(raw)))
            except ValueError:
                entries.append({"raw": _text(raw)})
        return entries

    def requeue_dead_letters(self, limit: int = 100) -> int:
        """
        Move up to ``limit`` dead-lettered jobs back onto the work queue.

        The job keeps its ``jobId`` and gets a fresh retry budget.  Entries
        that are not JSON objects stay dead.
        """
        moved = 0
        skipped: list[str] = []
        for _ in range(max(limit, 0)):
            raw = self._client.lpop(self._dead_letter_key)
            if raw is None:
                break
            raw = _text(raw)
            try:
                entry = json.loads(raw)
            except ValueError:
                entry = None
            if not isinstance(entry, dict) or "raw" in entry:
                skipped.append(raw)
                continue
            for name in DEAD_LETTER_FIELDS:
                entry.pop(name, None)
            entry["retryCount"] = 0
            self._client.rpush(self._queue_key, json.dumps(entry))
            moved += 1

        for raw in skipped:
            self._client.rpush(self._dead_letter_key, raw)

        logger.info(
            "dead_letters_requeued",
            extra={"moved": moved, "skipped": len(skipped)},
        )
        return moved

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        self._client.close()


def _text(value: str | bytes) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
