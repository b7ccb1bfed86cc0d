"""
Backoff-and-retry for outbound platform calls.

Shopify, Stripe and Supabase requests go through ``retry_with_backoff`` so a
dropped connection or a 5xx does not surface to the shopper on first failure.
"""

import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from storefront.exceptions import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")
ExceptionTypes = Tuple[Type[Exception], ...]


@dataclass(frozen=True)
class RetryConfig:
    """How many times to call, and how long to wait between calls."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: Tuple[float, float] = (0.5, 1.5)
    retryable_exceptions: ExceptionTypes = (Exception,)
    non_retryable_exceptions: ExceptionTypes = ()

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to sleep after the zero-based ``attempt`` failed."""
        capped = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if not self.jitter:
            return capped
        low, high = self.jitter_range
        return capped * random.uniform(low, high)


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retryable_exceptions: ExceptionTypes = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Re-invoke the decorated function until it returns or attempts run out.

    Storefront errors flagged ``retryable=False`` (validation failures,
    4xx platform responses) propagate on the first failure, as do the
    config's ``non_retryable_exceptions``. ``on_retry`` receives the error
    and the one-based number of the attempt that failed.

    Example:
        @retry_with_backoff(config=platform_retry)
        def fetch_products(self):
            ...
    """
    policy = config or RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        retryable_exceptions=retryable_exceptions,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except policy.non_retryable_exceptions:
                    logger.warning(f"{name} failed with a non-retryable error")
                    raise
                except policy.retryable_exceptions as e:
                    if not is_retryable(e):
                        raise
                    attempt += 1
                    if attempt >= policy.max_attempts:
                        logger.error(f"{name} gave up after {attempt} attempts: {e}")
                        raise

                    delay = policy.calculate_delay(attempt - 1)
                    logger.warning(
                        f"{name} attempt {attempt} of {policy.max_attempts} failed ({e}); "
                        f"sleeping {delay:.2f}s"
                    )
                    if on_retry is not None:
                        on_retry(e, attempt)
                    time.sleep(delay)

        return wrapper
    return decorator
