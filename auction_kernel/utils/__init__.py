"""Utility modules for the auction kernel."""

from auction_kernel.utils.idempotency import generate_job_id

__all__ = [
    "generate_job_id",
]
