"""Pydantic models for quizzes and generation jobs.

Wire names follow the JSON the browser client already speaks
(``correctAnswerId``, ``incorrectExplanations``, ``createdAt``); Python code
uses snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Rank in the lifecycle; a write must strictly increase the rank.
_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """True when *current* → *new* is a forward edge of the job lifecycle."""
    return _STATUS_RANK[new] > _STATUS_RANK[current]


def allowed_predecessors(new: JobStatus) -> List[JobStatus]:
    """Statuses a job may be in for a write of *new* to succeed."""
    return [s for s in JobStatus if can_transition(s, new)]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        """Case-insensitive lookup; raises ValueError for unknown labels."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(d.value for d in cls)
            raise ValueError(f"difficulty must be one of {valid}, got {value!r}") from None


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ── Quiz ──────────────────────────────────────────────────


class TrueFalseFact(_WireModel):
    """A single true/false statement as produced by the model."""

    id: str
    text: str
    is_true: bool = Field(alias="isTrue")
    explanation: str


class Answer(_WireModel):
    id: str
    text: str


class Question(_WireModel):
    id: str
    text: str
    answers: List[Answer]
    correct_answer_id: str = Field(alias="correctAnswerId")
    explanation: str
    incorrect_explanations: Optional[Dict[str, str]] = Field(
        default=None, alias="incorrectExplanations"
    )

    def correct_answer(self) -> Optional[Answer]:
        return next((a for a in self.answers if a.id == self.correct_answer_id), None)


class Quiz(_WireModel):
    id: str
    title: str
    difficulty: Difficulty
    questions: List[Question]
    created_at: Optional[datetime] = None
    user_id: Optional[str] = None


# ── Jobs ──────────────────────────────────────────────────


class JobMetadata(_WireModel):
    """Immutable input snapshot captured when the job is submitted."""

    title: str
    num_questions: int = Field(alias="numQuestions")
    difficulty: Difficulty
    user_id: str = Field(alias="userId")
    original_quiz_id: Optional[str] = Field(default=None, alias="originalQuizId")


class Job(_WireModel):
    id: str
    status: JobStatus
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    metadata: JobMetadata
    result: Optional[Quiz] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _hide_fields_for_status(self) -> "Job":
        """``result`` only exists on completed jobs, ``error`` only on failed ones."""
        if self.status is not JobStatus.COMPLETED:
            self.result = None
        if self.status is not JobStatus.FAILED:
            self.error = None
        return self
