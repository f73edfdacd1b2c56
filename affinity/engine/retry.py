"""Retry policy and attempt bookkeeping.

The state machine here is pure: it counts attempts, remembers the last error
and says how long to wait. Sleeping and telling the user about a retry is the
caller's job.
"""

import random
from dataclasses import dataclass, field
from typing import Optional, Tuple, Type

from .errors import RETRYABLE_ERRORS


class RetryPolicy:
    """Retry policy with optional exponential backoff."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 1.0,
                 jitter: bool = False,
                 retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts, including the first one
            base_delay: Base delay in seconds
            max_delay: Maximum delay in seconds
            exponential_base: Base for exponential backoff (1.0 = fixed delay)
            jitter: Whether to add jitter
            retry_on: Exception types that are worth another attempt
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Number of attempts made so far (1-based)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** max(attempt - 1, 0))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay = delay * (0.5 + random.random())

        return delay

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    def new_state(self) -> "RetryState":
        return RetryState(policy=self)


@dataclass
class RetryState:
    """Attempt counter for one operation under a RetryPolicy."""
    policy: RetryPolicy
    attempts: int = 0
    last_error: Optional[BaseException] = None
    next_delay: Optional[float] = None
    gave_up: bool = field(default=False)

    def begin_attempt(self) -> int:
        self.attempts += 1
        self.next_delay = None
        return self.attempts

    def record_failure(self, error: BaseException) -> bool:
        """Record a failed attempt; return True if another attempt should follow."""
        self.last_error = error
        if not self.policy.is_retryable(error) or self.attempts >= self.policy.max_attempts:
            self.gave_up = True
            self.next_delay = None
            return False
        self.next_delay = self.policy.calculate_delay(self.attempts)
        return True

    @property
    def exhausted(self) -> bool:
        return self.gave_up
