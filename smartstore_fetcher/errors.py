"""
Closed error taxonomy for a single fetch attempt.

A failure is classified once, where it is detected (the session runner),
and the classification travels with the exception from there on. Nothing
downstream inspects error messages to decide what happened.
"""

from enum import Enum


class BlockReason(str, Enum):
    CAPTCHA = "CAPTCHA"
    RATE_LIMITED = "RATE_LIMITED"
    ACCESS_DENIED = "ACCESS_DENIED"


class TransientCause(str, Enum):
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    EMPTY_PAYLOAD = "EMPTY_PAYLOAD"
    SESSION_UNAVAILABLE = "SESSION_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


class FetchError(Exception):
    """Base class for classified attempt failures."""

    @property
    def classification(self) -> str:
        raise NotImplementedError

    @property
    def blocked(self) -> bool:
        return False


class BlockedError(FetchError):
    """The site actively rejected or challenged the attempt."""

    def __init__(self, reason: BlockReason, message: str | None = None):
        self.reason = BlockReason(reason)
        super().__init__(message or f"Blocked by site: {self.reason.value}")

    @property
    def classification(self) -> str:
        return self.reason.value

    @property
    def blocked(self) -> bool:
        return True


class TransientError(FetchError):
    """Ordinary network, session or payload failure; worth a backoff and retry."""

    def __init__(self, cause: TransientCause, message: str | None = None):
        self.cause = TransientCause(cause)
        super().__init__(message or f"Transient failure: {self.cause.value}")

    @property
    def classification(self) -> str:
        return self.cause.value


def classification_of(exc: BaseException) -> str:
    """Metric/error tag for any exception; taxonomy errors keep their tag."""
    if isinstance(exc, FetchError):
        return exc.classification
    return type(exc).__name__
