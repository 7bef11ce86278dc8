"""
Retries with exponential backoff for world store access.

A RetryPolicy decides which errors are transient and how long to wait
between attempts. The ``retry`` decorator applies a policy to a function.
"""

import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors a remote record service raises while it is briefly unreachable
DEFAULT_TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
)


def exponential_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> float:
    """
    Delay before the retry that follows a failed attempt.

    Args:
        attempt: Zero-based index of the failed attempt
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound on any delay
        exponential_base: Growth factor per attempt

    Returns:
        Delay in seconds
    """
    return min(base_delay * exponential_base ** attempt, max_delay)


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently to retry an operation.

    Attributes:
        max_attempts: Attempts including the first one
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound on any delay
        exponential_base: Growth factor per attempt
        retryable_exceptions: Error types worth retrying
        sleep: Wait function, replaceable in tests
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    retryable_exceptions: Tuple[Type[BaseException], ...] = DEFAULT_TRANSIENT_EXCEPTIONS
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    def is_transient(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable_exceptions)

    def delay(self, attempt: int) -> float:
        return exponential_backoff(
            attempt, self.base_delay, self.max_delay, self.exponential_base
        )

    def call(
        self,
        func: Callable[..., T],
        *args: Any,
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        **kwargs: Any,
    ) -> T:
        """
        Call ``func`` until it succeeds, fails permanently or runs out of attempts.

        Args:
            func: Operation to run
            *args: Positional arguments for ``func``
            on_retry: Called with the error and the upcoming attempt number
                before each wait
            **kwargs: Keyword arguments for ``func``

        Returns:
            Whatever ``func`` returns

        Raises:
            Exception: The last error, unchanged, once retrying stops
        """
        name = getattr(func, "__qualname__", repr(func))
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.is_transient(e):
                    logger.debug(f"{name}: {type(e).__name__} is permanent, not retrying")
                    raise
                if attempt + 1 >= self.max_attempts:
                    logger.warning(
                        f"{name}: giving up after {self.max_attempts} attempts "
                        f"({type(e).__name__}: {e})"
                    )
                    raise

                wait = self.delay(attempt)
                attempt += 1
                logger.info(
                    f"{name}: attempt {attempt}/{self.max_attempts} failed "
                    f"with {type(e).__name__}, retrying in {wait:.2f}s"
                )
                if on_retry is not None:
                    on_retry(e, attempt)
                self.sleep(wait)


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator form of RetryPolicy.call.

    Example:
        @retry(max_attempts=3, base_delay=0.1)
        def load_region(bounds):
            return store.load_segments(bounds)
    """
    policy = RetryPolicy(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        retryable_exceptions=retryable_exceptions or DEFAULT_TRANSIENT_EXCEPTIONS,
        sleep=sleep,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return policy.call(func, *args, on_retry=on_retry, **kwargs)

        return wrapper

    return decorator
