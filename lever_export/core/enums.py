"""
Enumeration definitions for the application.

All enums are defined here to maintain consistency and type safety.
"""
from enum import Enum


class FailureKind(str, Enum):
    """
    Classification of a request outcome that did not produce data.

    - THROTTLED: HTTP 429, triggers the global cooldown and is retried
    - TRANSIENT: network or decoding error or 5xx, retried without cooldown
    - REJECTED: any other 4xx (or an unreadable body), never retried
    - EXHAUSTED: the retry budget ran out on THROTTLED/TRANSIENT
    """

    THROTTLED = "throttled"
    TRANSIENT = "transient"
    REJECTED = "rejected"
    EXHAUSTED = "exhausted"

    @property
    def retryable(self) -> bool:
        """Whether a request that failed this way is worth another attempt."""
        return self in (FailureKind.THROTTLED, FailureKind.TRANSIENT)


class SubResourceKind(str, Enum):
    """How a sub-resource is fetched."""

    PAGINATED = "paginated"
    SINGLETON = "singleton"


class TriggerType(str, Enum):
    """
    Record shape condition that decides whether a sub-resource is fetched.

    - ALWAYS: fetched for every record
    - ARCHIVED_REASON: record is archived with a reason code
    - HAS_APPLICATIONS: record has at least one application
    """

    ALWAYS = "always"
    ARCHIVED_REASON = "archived_reason"
    HAS_APPLICATIONS = "has_applications"
