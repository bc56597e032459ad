"""
Typed exception hierarchy for the auction kernel and bid worker.

Every error carries a ``code`` class attribute (machine-readable, safe to
publish) and structured attributes instead of a message to be parsed.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AuctionKernelError (base)
    |
    +-- JobPayloadError              queue payload cannot become a typed job
    |
    +-- BidValidationError           terminal, surfaced as a rejection
    |   +-- AuctionNotFoundError
    |   +-- AuctionNotAvailableError
    |   +-- AuctionInactiveError
    |   +-- AuctionEndedError
    |   +-- BidTooLowError
    |
    +-- TransientProcessingError     retried with bounded backoff
    |
    +-- ConfigurationError           invalid worker configuration

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | When Raised
----------------|------------------------|-------------------------------------
Payload         | INVALID_JOB_PAYLOAD    | Bad JSON, missing or mistyped field
----------------|------------------------|-------------------------------------
Validation      | AUCTION_NOT_FOUND      | No product row for productId
                | AUCTION_NOT_AVAILABLE  | status != available (sold, ended...)
                | AUCTION_INACTIVE       | product hidden (active = false)
                | AUCTION_ENDED          | auction_end_date <= now
                | BID_TOO_LOW            | amount < minimum bid
----------------|------------------------|-------------------------------------
Transient       | TRANSIENT_FAILURE      | Wrapped infrastructure failure
----------------|------------------------|-------------------------------------
Configuration   | INVALID_CONFIGURATION  | Bad config file / env value

===============================================================================
HANDLING PATTERNS
===============================================================================

The retry classifier branches on type, never on message text:

    try:
        outcome = processor.process(job)
    except BidValidationError as e:
        publish_rejection(e.code, str(e))      # terminal
    except Exception as e:
        requeue_or_dead_letter(job, e)         # transient

Rejection messages keep the wording the web clients already display
("Product is sold", "Bid must be at least 550"), so ``str(exc)`` is the
user-facing reason and ``exc.code`` is the stable identifier.
"""

from decimal import Decimal


class AuctionKernelError(Exception):
    """
    Base exception for all auction kernel errors.

    All subclasses must have a `code` class attribute.
    """

    code: str = "AUCTION_KERNEL_ERROR"


# Payload errors


class JobPayloadError(AuctionKernelError):
    """A queue payload could not be parsed into a typed job."""

    code: str = "INVALID_JOB_PAYLOAD"

    def __init__(self, reason: str, raw_payload: str | None = None):
        self.reason = reason
        self.raw_payload = raw_payload
        super().__init__(f"Invalid job payload: {reason}")


# Validation errors (terminal)


class BidValidationError(AuctionKernelError):
    """Base for rejections decided under the auction row lock.

    Never retried: the same job against the same auction state always
    produces the same rejection.
    """

    code: str = "BID_VALIDATION_ERROR"


class AuctionNotFoundError(BidValidationError):
    """No auction row exists for the job's productId."""

    code: str = "AUCTION_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product not found")


class AuctionNotAvailableError(BidValidationError):
    """Auction status is anything other than ``available``."""

    code: str = "AUCTION_NOT_AVAILABLE"

    def __init__(self, product_id: int, status: str):
        self.product_id = product_id
        self.status = status
        super().__init__(f"Product is {status}")


class AuctionInactiveError(BidValidationError):
    """Auction is hidden (``active`` is false)."""

    code: str = "AUCTION_INACTIVE"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product is not active")


class AuctionEndedError(BidValidationError):
    """Auction end date has passed."""

    code: str = "AUCTION_ENDED"

    def __init__(self, product_id: int, auction_end_date: str):
        self.product_id = product_id
        self.auction_end_date = auction_end_date
        super().__init__("Auction has ended")


class BidTooLowError(BidValidationError):
    """Bid amount is below the current minimum bid."""

    code: str = "BID_TOO_LOW"

    def __init__(self, product_id: int, amount: Decimal, minimum_bid: Decimal):
        self.product_id = product_id
        self.amount = amount
        self.minimum_bid = minimum_bid
        super().__init__(f"Bid must be at least {_format_amount(minimum_bid)}")


# Transient errors


class TransientProcessingError(AuctionKernelError):
    """Infrastructure failure that may succeed on a later attempt."""

    code: str = "TRANSIENT_FAILURE"

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Transient failure for job {job_id}: {reason}")


# Configuration errors


class ConfigurationError(AuctionKernelError):
    """Worker configuration is invalid."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}: {reason}")


def _format_amount(amount: Decimal) -> str:
    # 550.00 -> "550", 550.50 -> "550.5"
    normalized = amount.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")
