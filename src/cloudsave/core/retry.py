# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/retry.py

"""
Retry with exponential backoff for idempotent remote reads.

Uploads and downloads are streamed and are not retried here; a failed
transfer is reported and picked up by the next sync pass.
"""

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import loguru

from cloudsave.system.exceptions import NetworkError, TransferError

logger = loguru.logger

RetryableTypes = tuple[type[Exception], ...]


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


# Remote reads: heartbeat, metadata, listings.
NETWORK_RETRY_CONFIG = RetryConfig(max_attempts=4, base_delay=0.5, max_delay=10.0)

NO_RETRY_CONFIG = RetryConfig(max_attempts=1)


def calculate_delay(attempt: int, config: RetryConfig, hint: Optional[float] = None) -> float:
    """Seconds to wait after failed ``attempt`` (1-based).

    A server ``Retry-After`` hint can lengthen the wait but never past
    ``max_delay``. Jitter is +/-10%.
    """
    if attempt < 1:
        return 0.0
    backoff = config.base_delay * config.exponential_base ** (attempt - 1)
    wait = min(max(backoff, hint or 0.0), config.max_delay)
    if config.jitter:
        wait *= random.uniform(0.9, 1.1)
    return max(wait, 0.0)


def is_retryable_error(exception: Exception, retryable_exceptions: RetryableTypes) -> bool:
    # Transport errors carry retry_possible; 401 and 404 set it False.
    return (isinstance(exception, retryable_exceptions)
            and getattr(exception, "retry_possible", True))


class RetryableOperation:
    """Runs a callable, retrying transient transport failures.

    Usage:
        with RetryableOperation("GET /api/v1/games", config) as op:
            games = op.execute(fetch_games)
    """

    def __init__(self, operation_name: str, config: Optional[RetryConfig] = None,
                 retryable_exceptions: RetryableTypes = (NetworkError, TransferError),
                 sleep: Callable[[float], None] = time.sleep):
        self.operation_name = operation_name
        self.config = config or NETWORK_RETRY_CONFIG
        self.retryable_exceptions = retryable_exceptions
        self.sleep = sleep
        self.attempt = 0
        self._started = 0.0

    def __enter__(self) -> "RetryableOperation":
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"{self.operation_name}: {time.monotonic() - self._started:.2f}s, "
                         f"{self.attempt} attempt(s)")
        return False

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        limit = self.config.max_attempts
        self.attempt = 0
        while True:
            self.attempt += 1
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if not is_retryable_error(e, self.retryable_exceptions):
                    raise
                if self.attempt >= limit:
                    logger.error(f"{self.operation_name}: giving up after {limit} attempt(s): {e}")
                    raise
                wait = calculate_delay(self.attempt, self.config, getattr(e, "backoff_seconds", None))
                logger.warning(f"{self.operation_name}: attempt {self.attempt}/{limit} failed ({e}), "
                               f"retrying in {wait:.2f}s")
                if wait > 0:
                    self.sleep(wait)
                continue
            if self.attempt > 1:
                logger.info(f"{self.operation_name}: succeeded on attempt {self.attempt}")
            return result
