"""
Cooperative self-throttle for rate-limited RPC methods.

The gate is shared by every status poll of a confirmation manager. Admission is
checked and reserved in a single synchronous call, so concurrent polls on the
event loop can never both read a positive budget and then both spend it.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from volumebot.errors import RateLimitedError


RATE_LIMIT_INDICATORS = [
    "429",
    "rate limit",
    "too many requests",
    "throttle",
]


@dataclass
class RateLimitState:
    """Remaining budgets and the forced back-off window."""
    method_remaining: int
    rps_remaining: int
    next_reset: float
    retry_after_until: float = 0.0


class RateLimitGate:
    """
    Token-bucket-like admission gate.

    Both budgets refill when the reset time passes. A rate-limit response closes the
    gate until the provider's retry-after (floored at ``min_retry_after``) elapses.
    """

    def __init__(
        self,
        method_limit: int = 10,
        rps_limit: int = 100,
        window: float = 1.0,
        min_retry_after: float = 2.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the gate with optimistic defaults.

        Args:
            method_limit: Calls allowed per window for the polled method
            rps_limit: Requests allowed per window overall
            window: Budget window in seconds
            min_retry_after: Floor for any forced back-off, in seconds
            clock: Monotonic time source
        """
        if method_limit < 1 or rps_limit < 1:
            raise ValueError("Rate limits must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")

        self.method_limit = method_limit
        self.rps_limit = rps_limit
        self.window = window
        self.min_retry_after = min_retry_after
        self._clock = clock
        self.state = RateLimitState(
            method_remaining=method_limit,
            rps_remaining=rps_limit,
            next_reset=clock() + window
        )

    def _refill(self, now: float):
        if now >= self.state.next_reset:
            self.state.method_remaining = self.method_limit
            self.state.rps_remaining = self.rps_limit
            self.state.next_reset = now + self.window

    def can_make_request(self) -> bool:
        """Whether a request would be admitted right now (does not reserve)."""
        now = self._clock()
        self._refill(now)
        return (
            self.state.method_remaining > 0
            and self.state.rps_remaining > 0
            and now >= self.state.retry_after_until
        )

    def try_acquire(self) -> bool:
        """Admit and reserve one request if both budgets allow it."""
        if not self.can_make_request():
            return False
        self.state.method_remaining -= 1
        self.state.rps_remaining -= 1
        return True

    def wait_time(self) -> float:
        """Seconds until the gate could admit another request."""
        now = self._clock()
        self._refill(now)
        wait = max(0.0, self.state.retry_after_until - now)
        if self.state.method_remaining <= 0 or self.state.rps_remaining <= 0:
            wait = max(wait, self.state.next_reset - now)
        return wait

    def record_rate_limited(self, retry_after: Optional[float] = None) -> float:
        """
        Close the gate after a rate-limit response.

        Args:
            retry_after: Provider supplied retry-after in seconds, if any

        Returns:
            The enforced back-off in seconds
        """
        delay = max(retry_after or 0.0, self.min_retry_after)
        self.state.retry_after_until = self._clock() + delay
        logger.bind(retry_after=delay).warning(f"Rate limited. Waiting {delay:.2f}s")
        return delay


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Check if an exception indicates rate limiting.

    Looks at the exception chain for an HTTP 429 response and falls back to
    indicator substrings in the message.
    """
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, RateLimitedError):
            return True
        response = getattr(current, "response", None)
        if getattr(response, "status_code", None) == 429:
            return True
        message = str(current).lower()
        if any(indicator in message for indicator in RATE_LIMIT_INDICATORS):
            return True
        current = current.__cause__ or current.__context__
    return False


def retry_after_from_error(error: BaseException) -> Optional[float]:
    """Extract a retry-after value in seconds from the exception chain, if present."""
    current: Optional[BaseException] = error
    while current is not None:
        retry_after = getattr(current, "retry_after", None)
        if retry_after is not None:
            return float(retry_after)
        response = getattr(current, "response", None)
        headers = getattr(response, "headers", None)
        if headers:
            value = headers.get("retry-after") or headers.get("Retry-After")
            if value is not None:
                try:
                    return float(value)
                except (TypeError, ValueError):
                    return None
        current = current.__cause__ or current.__context__
    return None
