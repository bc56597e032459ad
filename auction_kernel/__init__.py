"""
Auction Kernel

Transactional core of the bid worker:
- Row-locked bid application against the auction ledger
- Once-only auction acceptance with settlement artifacts
- Job receipts for idempotent replay of redelivered jobs
- Durable pending-job log for crash recovery
"""

__version__ = "0.1.0"
