"""Structural validation of model output.

Two passes run at different pipeline stages:

* :func:`validate_true_false` checks the raw ``{"questions": [...]}`` payload
  the model returned and turns it into :class:`TrueFalseFact` objects.
* :func:`validate_multiple_choice` checks converted questions (or quizzes
  saved by clients).

Structural defects raise :class:`QuizValidationError`. The only repair ever
made is filling in missing ``incorrectExplanations`` entries; the returned
:class:`ValidationReport` says whether that happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from quizmaker.core.exceptions import QuizValidationError
from quizmaker.models.quiz import Question, TrueFalseFact

logger = logging.getLogger(__name__)

ANSWERS_PER_QUESTION = 4


class ValidationStatus(str, Enum):
    VALID = "valid"
    REPAIRED = "repaired"


@dataclass
class ValidationReport:
    status: ValidationStatus = ValidationStatus.VALID
    repaired_question_ids: List[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return self.status is ValidationStatus.REPAIRED


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _warn_shortfall(produced: int, expected: Optional[int]) -> None:
    if expected is not None and produced < expected:
        logger.warning(
            "Model produced %d questions; %d were requested", produced, expected,
        )


# ── True/false stage ──────────────────────────────────────


def validate_true_false(payload: Any, expected: Optional[int] = None) -> List[TrueFalseFact]:
    """Validate the raw model payload and return typed facts.

    Raises:
        QuizValidationError: On a missing/empty ``questions`` list or any
            fact without a non-empty ``id``, ``text``, ``explanation`` and a
            boolean ``isTrue``.
    """
    if not isinstance(payload, dict):
        raise QuizValidationError("Model output is not a JSON object")

    items = payload.get("questions")
    if not isinstance(items, list) or not items:
        raise QuizValidationError("Model output contains no questions")

    facts: List[TrueFalseFact] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise QuizValidationError("fact is not an object", index)
        for name in ("id", "text", "explanation"):
            if not _non_empty_str(item.get(name)):
                raise QuizValidationError(f"missing or empty '{name}'", index)
        if not isinstance(item.get("isTrue"), bool):
            raise QuizValidationError("'isTrue' must be a boolean", index)
        facts.append(TrueFalseFact.model_validate(item))

    _warn_shortfall(len(facts), expected)
    return facts


# ── Multiple-choice stage ─────────────────────────────────


def _filler_explanation(answer_text: str, correct_text: str) -> str:
    return (
        f'The option "{answer_text}" is not correct. '
        f'The correct answer is "{correct_text}".'
    )


def _check_question(question: Question, index: int) -> None:
    for name in ("id", "text", "correct_answer_id", "explanation"):
        if not _non_empty_str(getattr(question, name)):
            raise QuizValidationError(f"missing required field '{name}'", index)

    if len(question.answers) != ANSWERS_PER_QUESTION:
        raise QuizValidationError(
            f"exactly {ANSWERS_PER_QUESTION} answers required, got {len(question.answers)}",
            index,
        )

    for answer in question.answers:
        if not _non_empty_str(answer.id) or not _non_empty_str(answer.text):
            raise QuizValidationError("every answer needs an id and text", index)

    if len({a.id for a in question.answers}) != ANSWERS_PER_QUESTION:
        raise QuizValidationError("answer ids are not unique", index)
    if len({a.text.strip() for a in question.answers}) != ANSWERS_PER_QUESTION:
        raise QuizValidationError("answer texts are not distinct", index)

    if question.correct_answer() is None:
        raise QuizValidationError("correctAnswerId does not match any answer", index)


def _repair_incorrect_explanations(question: Question) -> bool:
    """Fill gaps in ``incorrect_explanations`` in place; True if anything changed."""
    correct = question.correct_answer()
    explanations = dict(question.incorrect_explanations or {})
    changed = question.incorrect_explanations is None

    for answer in question.answers:
        if answer.id == question.correct_answer_id:
            continue
        if not _non_empty_str(explanations.get(answer.id)):
            explanations[answer.id] = _filler_explanation(answer.text, correct.text)
            changed = True

    question.incorrect_explanations = explanations
    return changed


def validate_multiple_choice(
    questions: Sequence[Question],
    expected: Optional[int] = None,
) -> ValidationReport:
    """Validate converted questions, repairing only missing wrong-answer explanations.

    Raises:
        QuizValidationError: On an empty list or any structural defect.
    """
    if not questions:
        raise QuizValidationError("Quiz contains no questions")

    report = ValidationReport()
    for index, question in enumerate(questions):
        _check_question(question, index)
        if _repair_incorrect_explanations(question):
            report.repaired_question_ids.append(question.id)

    if report.repaired_question_ids:
        report.status = ValidationStatus.REPAIRED
        logger.info(
            "Filled missing incorrect-answer explanations for %d question(s)",
            len(report.repaired_question_ids),
        )

    _warn_shortfall(len(questions), expected)
    return report
