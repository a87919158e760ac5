"""
Retry backoff — exponential delay with jitter.

The executor calls ``backoff_delay`` between attempts of a failing
step and sleeps for the result (through an injectable sleep function,
so tests never wait).
"""

from __future__ import annotations

import logging
import random

from hostprov.core.models.step import RecoveryPolicy

logger = logging.getLogger(__name__)

JITTER_RATIO = 0.3


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> float:
    """Seconds to wait before retry number ``attempt`` (1-based).

    ``min(base * 2**(attempt-1), max_delay)`` plus up to 30% jitter.
    """
    if attempt < 1:
        return 0.0
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    if jitter and delay > 0:
        delay += random.uniform(0, delay * JITTER_RATIO)
    return delay


def policy_delay(policy: RecoveryPolicy, attempt: int, jitter: bool = True) -> float:
    """Backoff for a step's recovery policy."""
    return backoff_delay(attempt, policy.backoff, policy.max_delay, jitter=jitter)
