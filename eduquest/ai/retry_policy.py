from __future__ import annotations

import logging
import random
from typing import Any, Callable, Optional, TypeVar

from .cancellation import interruptible_sleep, is_cancelled
from .errors import OperationCancelled, ProviderError, is_rate_limit_error

_log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
BACKOFF_BASE_SEC = 1.0
BACKOFF_JITTER_SEC = 1.0


def backoff_delay_sec(attempt: int, jitter: Callable[[], float] = random.random) -> float:
    """Delay before the retry that follows failed attempt number `attempt` (1-based)."""
    return (2 ** int(attempt)) * BACKOFF_BASE_SEC + jitter() * BACKOFF_JITTER_SEC


def generate_with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    cancel: Any = None,
    *,
    name: str = "",
    sleep: Optional[Callable[[float, Any], None]] = None,
    jitter: Callable[[], float] = random.random,
) -> T:
    """Call `operation` until it succeeds, retrying only rate-limit failures.

    Errors reaching this function are expected to be classified already
    (see errors.classify_provider_error); anything else is final.
    """
    sleeper = sleep or interruptible_sleep
    attempt = 0
    while attempt < max_attempts:
        if is_cancelled(cancel):
            raise OperationCancelled(name)
        try:
            return operation()
        except Exception as exc:
            attempt += 1
            if isinstance(exc, OperationCancelled):
                raise
            if not is_rate_limit_error(exc):
                _log.debug("non-retryable error in %s: %s", name or "AI call", exc)
                raise
            if attempt >= max_attempts:
                _log.warning("rate limit persisted after %d attempts for %s", attempt, name or "AI call")
                raise
            delay = backoff_delay_sec(attempt, jitter)
            _log.warning(
                "Rate limit hit for %s. Retrying in %.0fms... (Attempt %d/%d)",
                name or "AI call",
                delay * 1000,
                attempt,
                max_attempts,
            )
            sleeper(delay, cancel)
    raise ProviderError(f"Max retries reached for AI generation{f' ({name})' if name else ''}.")
