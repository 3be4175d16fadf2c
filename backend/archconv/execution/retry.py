"""
Bounded retry combinator.

Every converter counts its attempts here and nowhere else; the scheduler
never re-queues a failed hop.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

# Attempts per hop, first try included
MAX_RETRIES = 3

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """What happened across all attempts of one retried call."""

    success: bool
    attempts: int
    value: Optional[T] = None
    errors: List[Exception] = field(default_factory=list)

    @property
    def last_error(self) -> Optional[Exception]:
        return self.errors[-1] if self.errors else None


def retry(
    max_attempts: int,
    fn: Callable[[int], T],
    on_failure: Optional[Callable[[int, Exception], None]] = None,
) -> RetryOutcome[T]:
    """
    Call fn(attempt) until it returns without raising, at most max_attempts times.

    attempt is 0-based so callers can change strategy on later attempts.
    Exceptions are collected, not propagated. on_failure(attempt, error) is
    called after every failed attempt.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    errors: List[Exception] = []
    for attempt in range(max_attempts):
        try:
            value = fn(attempt)
        except Exception as e:
            errors.append(e)
            logger.debug(f"[Retry] Attempt {attempt + 1}/{max_attempts} failed: {e}")
            if on_failure is not None:
                on_failure(attempt, e)
            continue
        return RetryOutcome(success=True, attempts=attempt + 1, value=value, errors=errors)

    return RetryOutcome(success=False, attempts=max_attempts, errors=errors)
