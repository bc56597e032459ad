"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so processors and the worker loop never
    call ``datetime.now()`` or ``time.sleep()`` directly.  Retry backoff and
    reconnect waits go through ``Clock.sleep()`` so tests can drive the
    retry state machine without real timers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - None.  DeterministicClock never blocks.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time or need to wait must receive a
        Clock instance via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``now_ms()`` returns the same instant as epoch milliseconds.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block the caller for ``seconds``."""
        ...

    def now_ms(self) -> int:
        """Current time as epoch milliseconds (the event timestamp format)."""
        return int(self.now().timestamp() * 1000)


class SystemClock(Clock):
    """
    Production clock that returns actual system time and really sleeps.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``sleep()`` or ``set_time()`` is called.
        - ``sleep()`` advances the clock instead of blocking and records the
          requested duration in ``sleeps``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.advance(seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0.0

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
