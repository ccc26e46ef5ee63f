"""
Policy module: decides how a failed attempt is penalized and how long to
wait before the next one.

The logic is:
- explicit
- configurable
- easily auditable
"""

import random

from .errors import FetchError
from .proxies import Severity
from .settings import FetcherConfig


def severity_for(error: FetchError) -> Severity:
    # Any block burns the proxy hard; ordinary failures count one step
    if error.blocked:
        return Severity.ESCALATED
    return Severity.NORMAL


def retry_delay(error: FetchError, attempt: int, config: FetcherConfig, rng=random) -> float:
    """
    Seconds to wait after failed attempt number `attempt` (1-based).

    Blocked attempts wait a short fixed delay: the proxy that was blocked is
    already rotated away, the pause only keeps us from hammering the limiter.
    Transient failures back off exponentially with jitter, capped.
    """
    if error.blocked:
        return config.blocked_retry_delay_s

    backoff = config.retry_base_delay_s * (2 ** (attempt - 1))
    jitter = rng.uniform(0, config.retry_jitter_s) if config.retry_jitter_s > 0 else 0.0
    return min(config.retry_max_delay_s, backoff + jitter)
