"""
Retry state machine with exponential backoff.

A request's retry loop is modelled explicitly: each failed attempt is fed
into :class:`RetryState`, which decides whether another attempt is allowed
and how long to wait before it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from marketdash.constants import (
    MAX_RETRY_ATTEMPTS,
    MAX_RETRY_DELAY_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
)
from marketdash.core.errors import RateLimitError

RATE_LIMIT_STATUS = 429
_RATE_LIMIT_PHRASES = ("rate limit", "too many requests")


def _status_of(obj: object) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(obj, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Decide whether an error means "rate limited".

    Recognizes RateLimitError, anything carrying a 429 status (directly or on
    an attached ``response`` such as requests.HTTPError), and messages that
    mention the limit. A bare "429" in the text is not enough: request URLs
    quoted in connection errors can contain it.
    """
    if isinstance(error, RateLimitError):
        return True
    if _status_of(error) == RATE_LIMIT_STATUS:
        return True
    response = getattr(error, "response", None)
    if response is not None and _status_of(response) == RATE_LIMIT_STATUS:
        return True
    message = str(error).lower()
    return any(phrase in message for phrase in _RATE_LIMIT_PHRASES)


def is_timeout_error(error: BaseException) -> bool:
    return isinstance(error, (asyncio.TimeoutError, TimeoutError))


def compute_backoff(
    attempt: int,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    max_delay: float = MAX_RETRY_DELAY_SECONDS,
) -> float:
    """
    Delay after the given failed attempt (1-based): base * 2**(attempt-1), capped.

    Example:
        compute_backoff(1) -> 1.0, compute_backoff(2) -> 2.0, compute_backoff(3) -> 4.0
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


class RetryOutcome(Enum):
    """Where a retry loop stands."""

    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RetryOutcome.IN_PROGRESS


@dataclass
class RetryState:
    """
    Explicit retry state for a single request.

    Usage:
        state = RetryState(max_attempts=3)
        while True:
            state.begin_attempt()
            try:
                return await action()
            except Exception as error:
                delay = state.record_failure(error)
                if delay is None:
                    raise ...
                await asyncio.sleep(delay)
    """

    max_attempts: int = MAX_RETRY_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_SECONDS
    max_delay: float = MAX_RETRY_DELAY_SECONDS
    attempt: int = 0
    rate_limited_attempts: int = 0
    outcome: RetryOutcome = RetryOutcome.IN_PROGRESS
    last_error: Optional[BaseException] = None
    last_delay: Optional[float] = None

    def begin_attempt(self) -> int:
        if self.outcome.is_terminal:
            raise RuntimeError(f"Retry loop already finished ({self.outcome.value})")
        if self.attempt >= self.max_attempts:
            raise RuntimeError("Attempt budget exhausted")
        self.attempt += 1
        return self.attempt

    def record_success(self) -> None:
        self.outcome = RetryOutcome.SUCCEEDED

    def record_failure(self, error: BaseException) -> Optional[float]:
        """
        Register a failed attempt.

        Returns:
            Seconds to wait before the next attempt, or None when the budget
            is exhausted (the outcome is then terminal).
        """
        self.last_error = error
        rate_limited = is_rate_limit_error(error)
        if rate_limited:
            self.rate_limited_attempts += 1

        if self.attempt >= self.max_attempts:
            self.outcome = RetryOutcome.RATE_LIMITED if rate_limited else RetryOutcome.FAILED
            self.last_delay = None
            return None

        delay = compute_backoff(self.attempt, self.base_delay, self.max_delay)
        retry_after = getattr(error, "retry_after", None)
        if rate_limited and isinstance(retry_after, (int, float)) and retry_after > 0:
            # Upstream told us how long to wait
            delay = min(float(retry_after), self.max_delay)
        self.last_delay = delay
        return delay

    @property
    def attempts_left(self) -> int:
        return max(self.max_attempts - self.attempt, 0)
