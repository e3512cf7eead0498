"""
Retry and circuit-breaking for calls to the remote entity-status API.

Two horizons are covered here. `exponential_backoff` retries one dispatch a
few times within a drain (a dropped connection, a slow read). The
`CircuitBreaker` spans a whole drain: once the remote keeps failing, the rest
of the batch is left in the outbox for the next run instead of burning
attempts. Attempt counting across drains lives in the outbox itself.
"""

import functools
import time
from typing import Callable, Optional, Tuple, Type

from .logger import get_logger

logger = get_logger()

# 408 and 429 are the client's fault only in the sense of "come back later"
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
)


class RetryError(Exception):
    """All attempts failed; the last failure is chained as __cause__."""


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator that retries a call on the given exception types.

    Args:
        max_retries: Extra attempts after the first one (0 disables retrying)
        base_delay: Seconds to wait before the first retry
        max_delay: Upper bound for any single wait
        exponential_base: Factor applied to the wait after every retry
        exceptions: Exception types that trigger a retry; others propagate as-is
        on_retry: Called as on_retry(attempt, exception, delay) before sleeping

    Raises:
        RetryError: When the last attempt fails with a retryable exception

    Example:
        post = exponential_backoff(max_retries=2, base_delay=0.5,
                                   exceptions=(requests.exceptions.Timeout,))(session.post)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(f"Failed after {attempt + 1} attempts: {e}") from e
                    delay = min(base_delay * exponential_base ** attempt, max_delay)
                    attempt += 1
                    if on_retry:
                        on_retry(attempt, e, delay)
                    logger.debug("Retrying call", func=func.__name__, attempt=attempt, delay=delay, error=str(e))
                    time.sleep(delay)

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Stops calling a remote that keeps failing.

    CLOSED lets every call through and counts consecutive failures. Reaching
    failure_threshold moves to OPEN, which refuses calls until
    recovery_timeout seconds have passed since the last failure; the next
    caller then gets a single HALF_OPEN trial call. A success closes the circuit,
    a failure reopens it.

    Callers ask allow() before each call and report the outcome with
    record_success() / record_failure().
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = self.CLOSED
        self.failure_count = 0
        self._opened_at: Optional[float] = None

    def seconds_until_retry(self) -> float:
        if self.state != self.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    def allow(self) -> bool:
        if self.state == self.OPEN:
            if self.seconds_until_retry() > 0:
                return False
            self.state = self.HALF_OPEN
            logger.info("Circuit half-open, trying remote")
        return True

    def record_success(self) -> None:
        if self.state != self.CLOSED:
            logger.info("Circuit closed")
        self.state = self.CLOSED
        self.failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != self.OPEN:
                logger.warning("Circuit opened", failures=self.failure_count)
            self.state = self.OPEN
            self._opened_at = time.monotonic()


def should_retry_http_status(status_code: int) -> bool:
    """True for statuses worth trying again later (timeouts, throttling, 5xx gateways)."""
    return status_code in RETRYABLE_STATUS_CODES


def is_transient_error(exception: Exception) -> bool:
    """
    Best-effort guess whether an unclassified failure may succeed later.

    Checks, in order: builtin network errors, an HTTP status carried on the
    exception (``status`` or ``response.status_code``), then well-known
    words and status codes in the message.
    """
    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True

    status = getattr(exception, "status", None)
    response = getattr(exception, "response", None)
    if status is None and response is not None:
        status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return should_retry_http_status(status)

    message = str(exception).lower()
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return True
    return any(str(code) in message for code in RETRYABLE_STATUS_CODES)
