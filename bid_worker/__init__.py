"""
Bid Worker

Queue consumer that applies place-bid and accept-bid jobs to the auction
ledger (via auction_kernel), retries transient failures with bounded linear
backoff, dead-letters what cannot be applied, and publishes results over
Redis pub/sub.
"""

__version__ = "0.1.0"
