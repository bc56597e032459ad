"""
Module: auction_kernel.db.types
Responsibility: Annotated column types and conversion helpers for money and
    timestamps.  Centralizes precision so that models, jobs, and events use
    identical representations.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    and services/.

Invariants enforced:
    - No floats for money: JSON numbers are converted through ``str`` so
      ``520.1`` becomes ``Decimal("520.1")``, not its binary approximation.
    - Timestamps read back from SQLite come without tzinfo; ``as_utc``
      treats them as UTC so comparisons with the injected clock never mix
      naive and aware datetimes.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

# Bid amounts, prices, increments: 12 digits, 2 decimal places
Money = Annotated[Decimal, Numeric(12, 2)]

# Queue job identifiers ("<epoch_ms>-<random>" or producer supplied)
JobId = Annotated[str, String(64)]

MONEY_DECIMAL_PLACES = 2


def money_from_value(value: Any) -> Decimal:
    """
    Convert a JSON-decoded number (int, float, str) to Decimal.

    Raises:
        ValueError: If the value is not numeric, is a bool, or is not finite.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round to the storage precision (half-up)."""
    return amount.quantize(
        Decimal(1).scaleb(-MONEY_DECIMAL_PLACES), rounding=ROUND_HALF_UP
    )


def money_to_json(amount: Decimal | None) -> int | float | None:
    """Render a Decimal as a JSON number for published events."""
    if amount is None:
        return None
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive means UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def datetime_from_epoch_ms(value: int | float) -> datetime:
    """Convert a JavaScript-style epoch-millisecond timestamp."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def datetime_to_epoch_ms(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)
