"""
Job identifier generation.

A job id is the idempotency key for everything the worker writes: the
pending-log row, the job receipt, and the dead-letter entry all carry it.
Producers normally supply one; older producers did not, so the worker
assigns one at the dispatch boundary.
"""

import random
import string

_ALPHABET = string.digits + string.ascii_lowercase


def generate_job_id(epoch_ms: int, rng: random.Random | None = None) -> str:
    """
    Generate a job id for a payload that arrived without one.

    Format: ``<epoch_ms>-<9 base36 chars>``, the format the web API uses for
    the ids it assigns, so ids from both sources sort and read alike.

    Args:
        epoch_ms: Current time in epoch milliseconds (from the injected clock).
        rng: Random source; tests pass a seeded instance.

    Returns:
        Job id string.

    Example:
        generate_job_id(1700000000000) -> "1700000000000-k3j9x0a1q"
    """
    source = rng or random
    suffix = "".join(source.choice(_ALPHABET) for _ in range(9))
    return f"{epoch_ms}-{suffix}"
