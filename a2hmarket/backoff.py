"""Exponential backoff for outbox retries."""

from __future__ import annotations

import time

DEFAULT_BASE_DELAY_MS = 2_000
DEFAULT_MAX_DELAY_MS = 120_000
DEFAULT_MULTIPLIER = 2.0


def calculate_backoff_ms(attempt: int, max_delay_ms: int = 0) -> int:
    """Delay in ms before retry ``attempt`` (1-based); ``max_delay_ms <= 0`` means 120 000."""
    if max_delay_ms <= 0:
        max_delay_ms = DEFAULT_MAX_DELAY_MS
    delay = DEFAULT_BASE_DELAY_MS
    for _ in range(1, attempt):
        delay = int(delay * DEFAULT_MULTIPLIER)
        if delay >= max_delay_ms:
            return max_delay_ms
    return delay


def next_retry_at(attempt: int, max_delay_ms: int = 0) -> int:
    """Absolute Unix-millisecond time of the next retry."""
    return int(time.time() * 1000) + calculate_backoff_ms(attempt, max_delay_ms)