"""Retry policy for failed processing jobs.

A job gets ``max_attempts`` tries in total.  After a failed attempt *n*
(1-based) the job is rescheduled ``backoff_base * 2 ** (n - 1)`` seconds
later (5 s, 10 s, 20 s ... with the defaults) unless the error is terminal
(see :func:`kb_ingest.utils.errors.is_retryable`) or the attempts are used up.
"""

from __future__ import annotations

from dataclasses import dataclass

from kb_ingest.models.jobs import ProcessDocumentJob
from kb_ingest.utils.errors import is_retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a fixed attempt budget."""

    max_attempts: int = 3
    backoff_base: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.backoff_base < 0:
            raise ValueError(f"backoff_base must be non-negative, got {self.backoff_base}")

    def backoff_for(self, attempt: int) -> float:
        """Return the delay after failed attempt number *attempt* (1-based)."""
        return self.backoff_base * (2 ** (attempt - 1))

    def next_delay(self, job: ProcessDocumentJob, exc: BaseException) -> float | None:
        """Return the delay before the next attempt, or ``None`` if the job is done for."""
        attempt = job.attempts_made + 1
        budget = min(self.max_attempts, job.max_attempts)
        if not is_retryable(exc) or attempt >= budget:
            return None
        return self.backoff_for(attempt)
