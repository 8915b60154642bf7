"""Retry helpers for transient network errors.

Private submodule - not exported by the package.

Retry Policy
------------
- RETRY: timeouts, network errors, RemoteProtocolError, HTTP 429/5xx
- PROPAGATE: everything else (4xx, local protocol bugs, config errors)
"""

from __future__ import annotations

from code_index.clients._retry.platform import is_retryable_platform_error, log_platform_retry, platform_breaker

__all__ = [
    'is_retryable_platform_error',
    'log_platform_retry',
    'platform_breaker',
]
