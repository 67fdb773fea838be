"""Retry and backoff policies plus permanent-error classification.

Two retry layers exist and are deliberately independent:

- Queue-level retries (``QueueRetryPolicy``) re-run a delivery job a fixed
  number of times with a short exponential backoff, whatever the error.
- Business-level retries (``RetryPolicy``) are decided by the log store's
  ``record_failed_attempt`` once the queue has given up, with a configurable
  maximum and a much longer backoff.

Permanent failures skip business-level retries entirely. Which errors are
permanent is decided by an injectable ``ErrorClassifier``.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from notifications.constants import (
    DEFAULT_BASE_RETRY_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    QUEUE_BACKOFF_BASE_MS,
    QUEUE_MAX_ATTEMPTS,
)
from notifications.exceptions import SendFailure


def exponential_delay_ms(base_delay_ms: int, attempt: int) -> int:
    """Return ``base_delay_ms * 2^(attempt-1)`` for attempt numbers >= 1.

    Args:
        base_delay_ms: Delay before the first retry.
        attempt: 1-based retry number.

    Returns:
        Delay in milliseconds.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return base_delay_ms * 2 ** (attempt - 1)


@dataclass(frozen=True)
class RetryPolicy:
    """Business-level retry budget and backoff.

    Attributes:
        max_retries: Retries allowed before a log is terminally FAILED.
        base_delay_ms: Delay before the first retry; doubles every retry.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_RETRY_DELAY_MS

    def delay_for(self, retry_count: int) -> timedelta:
        """Backoff before the ``retry_count``-th retry."""
        return timedelta(
            milliseconds=exponential_delay_ms(self.base_delay_ms, retry_count)
        )

    def next_retry_at(self, now: datetime, retry_count: int) -> datetime:
        """Time the ``retry_count``-th retry becomes due."""
        return now + self.delay_for(retry_count)

    def allows(self, retry_count: int) -> bool:
        """Whether a log that has failed ``retry_count`` times may retry again."""
        return retry_count <= self.max_retries


@dataclass(frozen=True)
class QueueRetryPolicy:
    """Transport-level retry schedule applied by the delivery queue.

    ``attempts`` is the total number of delivery attempts per job, so the
    default of 3 means two retries, 1s and 2s after the failures.
    """

    attempts: int = QUEUE_MAX_ATTEMPTS
    backoff_base_ms: int = QUEUE_BACKOFF_BASE_MS

    def backoff_for(self, attempts_made: int) -> timedelta:
        """Delay before the next attempt after ``attempts_made`` failures."""
        return timedelta(
            milliseconds=exponential_delay_ms(self.backoff_base_ms, attempts_made)
        )

    def intervals_seconds(self) -> list[float]:
        """Backoff schedule in seconds for every retry the policy allows."""
        return [
            self.backoff_for(attempt).total_seconds()
            for attempt in range(1, self.attempts)
        ]

    def has_attempts_left(self, attempts_made: int) -> bool:
        return attempts_made < self.attempts


class ErrorClassifier(Protocol):
    """Decides whether a send error should never be retried."""

    def is_permanent(self, error: BaseException | str) -> bool:
        """Return True when retrying the send cannot succeed."""
        ...


DEFAULT_PERMANENT_PATTERNS: tuple[str, ...] = (
    r"invalid.*email",
    r"invalid.*address",
    r"invalid.*recipient",
    r"no.*recipient",
    r"recipient.*rejected",
    r"address.*rejected",
    r"user.*unknown",
    r"mailbox.*unavailable",
    r"mailbox.*disabled",
    r"mailbox.*not.*found",
    r"user.*suspended",
    r"account.*suspended",
    r"account.*disabled",
    r"spam",
    r"blocked",
    r"denied",
    r"exceeded",
    r"limit",
    r"complaint",
    r"policy",
    r"prohibited",
    r"authentication.*failed",
    r"bad.*credentials",
    r"credentials.*rejected",
)


class PatternErrorClassifier:
    """Classify errors as permanent by case-insensitive regex search.

    A ``PermanentSendFailure`` is always permanent; any other error,
    including a ``TransientSendFailure``, is matched against its message.
    """

    def __init__(self, patterns: Iterable[str] = DEFAULT_PERMANENT_PATTERNS):
        """Initialize the classifier.

        Args:
            patterns: Regular expressions identifying permanent failures.
        """
        self.patterns = tuple(patterns)
        self._compiled = [re.compile(pattern, re.IGNORECASE) for pattern in self.patterns]

    def is_permanent(self, error: BaseException | str) -> bool:
        if isinstance(error, SendFailure) and error.permanent:
            return True
        message = str(error)
        return any(pattern.search(message) for pattern in self._compiled)
