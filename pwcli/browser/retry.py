from __future__ import annotations

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from .errors import CommandTimeoutError
from .http_client import HttpClientError

logger = logging.getLogger("pwcli.browser.retry")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (HttpClientError, CommandTimeoutError)


def with_retry(
    max_attempts: int = 3,
    delay: float = 0.1,
    backoff: float = 2.0,
    retry_on: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable:
    """Retry the decorated call on `retry_on` errors, sleeping `delay * backoff**n` in between.

    The last error is re-raised once `max_attempts` calls have failed.
    """
    attempts = max(1, int(max_attempts))

    def decorator(func: Callable) -> Callable:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            pause = delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as exc:
                    if attempt == attempts:
                        raise
                    logger.info("%s failed (%d/%d): %s; retrying in %.2fs", name, attempt, attempts, exc, pause)
                    time.sleep(pause)
                    pause *= backoff
            raise AssertionError("unreachable")

        return wrapper

    return decorator
