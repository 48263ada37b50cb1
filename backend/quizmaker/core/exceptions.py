"""Error taxonomy for the quiz generation pipeline.

Every failure the pipeline can surface derives from :class:`QuizmakerError`
so routes and the batch worker can catch the family without catching
programming errors by accident.
"""

from __future__ import annotations

from typing import Optional


class QuizmakerError(Exception):
    """Base class for all pipeline errors."""


class QuizValidationError(QuizmakerError):
    """Model output is structurally broken and cannot be repaired."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        if index is not None:
            message = f"Question {index + 1}: {message}"
        super().__init__(message)


class GenerationBackendError(QuizmakerError):
    """The LLM call failed, returned nothing, or returned no JSON."""


class GenerationTimeout(GenerationBackendError):
    """The backend call exceeded its time budget (or the transport timed out)."""


class RateLimited(GenerationBackendError):
    """The generation gate is cooling down.

    ``retry_after`` is the number of seconds until the next call is allowed.
    """

    def __init__(self, retry_after: float, window: float):
        self.retry_after = max(0.0, retry_after)
        self.window = window
        super().__init__(
            "ThrottlingException: the generation backend accepts one request every "
            f"{window:.0f}s. Try again in {self.retry_after:.0f}s."
        )


class StoreError(QuizmakerError):
    """The job store or quiz store is unreachable or rejected a write."""


class JobNotFound(StoreError):
    """No job row exists for the given id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidJobTransition(StoreError):
    """A status write would move a job backwards (or out of a terminal state)."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")


class JobRecordUnreadable(StoreError):
    """A job row exists but its stored metadata or result cannot be parsed."""

    def __init__(self, job_id: str, status: Optional[str], reason: str):
        self.job_id = job_id
        self.status = status
        self.reason = reason
        super().__init__(f"Job {job_id} record is unreadable: {reason}")
