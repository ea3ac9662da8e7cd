"""
Backoff for catalog writes that fail for reasons that go away on their own.

A bulk batch rejected by a busy search node, or a SQLite commit that lost
the lock to a concurrent flush thread, is resent after a growing pause.
Mapping conflicts, missing tables and other permanent failures are not.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional

# Substrings of error messages that mark a failure worth resending
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "database is locked",
    "es_rejected_execution_exception",
    "circuit_breaking_exception",
    "too_many_requests",
    "service unavailable",
    "429",
    "500",
    "502",
    "503",
)

# Request timeout, rate limiting and server-side failures
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when a batch still fails after its last resend."""


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Resend a catalog write until it goes through or the attempts run out.

    Only the exception types listed in exceptions are resent; anything else
    propagates from the first attempt. After max_retries resends the last
    failure is wrapped in RetryError. on_retry(attempt, exception, delay) is
    called before each pause, with attempt counting from 1.

    The BulkWriter wraps its send function this way:

        send = exponential_backoff(max_retries=3, base_delay=0.5,
                                   exceptions=(TransientStoreError,))(gateway.write_batch)
    """
    def decorator(send: Callable) -> Callable:
        @functools.wraps(send)
        def resend(*args, **kwargs):
            delay = base_delay
            attempt = 0
            while True:
                try:
                    return send(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt > max_retries:
                        raise RetryError(f"Failed after {attempt} attempts: {e}") from e
                    pause = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt, e, pause)
                    time.sleep(pause)
                    delay *= exponential_base

        return resend
    return decorator


def is_transient_error(exception: Exception) -> bool:
    """True when the error message names a timeout, lock, overload or 5xx."""
    message = str(exception).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS
