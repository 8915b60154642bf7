"""Platform API retry and circuit breaker helpers.

Private module - import from _retry package.
"""

from __future__ import annotations

import logging

import circuitbreaker
import httpx
import tenacity

__all__ = [
    'is_retryable_platform_error',
    'log_platform_retry',
    'platform_breaker',
]

logger = logging.getLogger(__name__)

# 429 rate limited, 5xx gateway or server trouble
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Circuit breaker - opens after consecutive failures, hard fails until recovery
PLATFORM_FAILURE_THRESHOLD = 5
PLATFORM_RECOVERY_TIMEOUT = 30


def is_retryable_platform_error(exc: BaseException) -> bool:
    """Timeouts, dropped connections, garbled responses, 429 and 5xx.

    Client errors and local misconfiguration (bad URL, proxy) propagate.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in RETRYABLE_STATUS_CODES


def log_platform_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log platform retry attempt with exception details."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return

    exc_msg = str(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        exc_msg = f'HTTP {exc.response.status_code}: {exc_msg}'

    logger.warning(f'[RETRY] Platform API attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc_msg}')


def _platform_circuit_filter(thrown_type: type, thrown_value: BaseException) -> bool:
    """Only count retryable errors toward circuit breaker."""
    return is_retryable_platform_error(thrown_value)


platform_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=PLATFORM_FAILURE_THRESHOLD,
    recovery_timeout=PLATFORM_RECOVERY_TIMEOUT,
    expected_exception=_platform_circuit_filter,
    name='platform',
)
