"""
Timing and context helpers for log output.

Used around the expensive parts of the world server: distance field
generation, A* searches and world loading.
"""

import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PerformanceTimer:
    """
    Context manager that times a block and logs the duration.

    The record says whether the block completed or raised, and carries
    ``duration_ms`` and ``operation`` as extra fields.

    Usage:
        with PerformanceTimer("astar_search") as timer:
            path = pathfinder.find_path(start, goal)
        timer.duration_ms
    """

    def __init__(
        self,
        operation_name: str,
        log_level: int = logging.DEBUG,
        threshold_ms: Optional[float] = None,
        target: Optional[logging.Logger] = None,
    ):
        """
        Args:
            operation_name: Name shown in the log message
            log_level: Level of the timing record
            threshold_ms: Skip the record when the block ran faster than this
            target: Logger to write to; defaults to this module's logger
        """
        self.operation_name = operation_name
        self.log_level = log_level
        self.threshold_ms = threshold_ms
        self.target = target or logger
        self.duration_ms: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "PerformanceTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._start is None:
            return
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        if self.threshold_ms is not None and self.duration_ms < self.threshold_ms:
            return

        outcome = "completed" if exc_type is None else f"failed ({exc_type.__name__})"
        self.target.log(
            self.log_level,
            f"{self.operation_name} {outcome} in {self.duration_ms:.2f}ms",
            extra={"duration_ms": self.duration_ms, "operation": self.operation_name},
        )


def log_performance(
    log_level: int = logging.DEBUG,
    threshold_ms: Optional[float] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that times every call with a PerformanceTimer.

    The record goes to the decorated function's module logger.

    Args:
        log_level: Level of the timing record
        threshold_ms: Only log calls slower than this

    Example:
        @log_performance(threshold_ms=250.0)
        def generate(self, snapshot):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = func.__qualname__
        target = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with PerformanceTimer(name, log_level, threshold_ms, target):
                return func(*args, **kwargs)

        return wrapper

    return decorator


def log_with_context(
    log_level: int,
    message: str,
    target: Optional[logging.Logger] = None,
    **context: Any,
) -> None:
    """
    Log one message with extra fields attached to the record.

    Example:
        log_with_context(logging.INFO, "Chunk evicted", chunk_id="3:2")
    """
    (target or logger).log(log_level, message, extra=context)
