"""Exponential backoff for failed delivery attempts."""

from .config import Config


def compute_backoff_delay(
    attempts: int,
    multiplier: float = Config.QUEUE_BACKOFF_MULTIPLIER,
    base_delay_ms: int = Config.QUEUE_BASE_BACKOFF_MS,
    max_delay_ms: int = Config.QUEUE_MAX_BACKOFF_MS,
) -> int:
    """Return the delay before the next attempt, in milliseconds.

    Formula: min(base_delay_ms * multiplier ** (attempts - 1), max_delay_ms)
    Example with the defaults: 1s, 2s, 4s, 8s, ... capped at 5 minutes.

    No jitter is applied, so entries that fail together become eligible
    together.

    Args:
        attempts: Attempts used so far, including the one that just failed (>= 1)
        multiplier: Growth factor per attempt (>= 1.0)
        base_delay_ms: Delay after the first failure
        max_delay_ms: Upper bound on any delay

    Returns:
        Delay in whole milliseconds

    Raises:
        ValueError: If attempts < 1 or multiplier < 1
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    if multiplier < 1:
        raise ValueError(f"multiplier must be >= 1, got {multiplier}")

    try:
        delay = base_delay_ms * multiplier ** (attempts - 1)
    except OverflowError:
        return max_delay_ms

    return int(min(delay, max_delay_ms))
