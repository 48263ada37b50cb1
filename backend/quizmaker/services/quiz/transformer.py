"""True/false facts → four-option multiple-choice questions.

The model only ever produces true/false statements; every statement becomes a
question with one "agree" option, one "disagree" option and two distractors,
shuffled so answer position carries no signal.
"""

from __future__ import annotations

import logging
import random
import uuid
from typing import List, Optional, Sequence, Tuple

from quizmaker.models.quiz import Answer, Question, TrueFalseFact

logger = logging.getLogger(__name__)

AGREE_POOL: Tuple[str, ...] = (
    "Correct",
    "That's right",
    "True",
    "Yes, the statement is accurate",
    "The statement holds",
)

DISAGREE_POOL: Tuple[str, ...] = (
    "Incorrect",
    "Not true",
    "False",
    "No, the statement is inaccurate",
    "The statement does not hold",
)

# One pool is picked per question, then two distinct entries from it.
DISTRACTOR_POOLS: Tuple[Tuple[str, ...], ...] = (
    (
        "There is not enough information to judge",
        "It depends on the context",
        "Partially correct, but not entirely accurate",
        "Only true in exceptional cases",
    ),
    (
        "Neither true nor false",
        "It cannot be determined from the statement",
        "True according to some sources, false according to others",
        "The statement is too ambiguous to evaluate",
    ),
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _truth_word(is_true: bool) -> str:
    return "true" if is_true else "false"


def loser_explanation(fact: TrueFalseFact) -> str:
    return (
        f"This option is incorrect. The statement is {_truth_word(fact.is_true)}. "
        f"{fact.explanation}"
    )


def distractor_explanation(fact: TrueFalseFact) -> str:
    return (
        "This option is incorrect. The statement is either entirely true or entirely "
        "false; it cannot be partially true or undecidable. "
        f"{fact.explanation}"
    )


def to_multiple_choice(fact: TrueFalseFact, rng: Optional[random.Random] = None) -> Question:
    """Convert one true/false fact into a shuffled four-option question."""
    rng = rng or random.Random()

    agree = Answer(id=_new_id(), text=rng.choice(AGREE_POOL))
    disagree = Answer(id=_new_id(), text=rng.choice(DISAGREE_POOL))

    pool = rng.choice(DISTRACTOR_POOLS)
    distractors = [Answer(id=_new_id(), text=text) for text in rng.sample(pool, 2)]

    correct, loser = (agree, disagree) if fact.is_true else (disagree, agree)

    answers = [agree, disagree, *distractors]
    rng.shuffle(answers)

    incorrect_explanations = {loser.id: loser_explanation(fact)}
    for d in distractors:
        incorrect_explanations[d.id] = distractor_explanation(fact)

    return Question(
        id=fact.id,
        text=fact.text,
        answers=answers,
        correct_answer_id=correct.id,
        explanation=fact.explanation,
        incorrect_explanations=incorrect_explanations,
    )


def convert_true_false_to_multiple_choice(
    facts: Sequence[TrueFalseFact],
    expected: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[Question]:
    """Convert every fact, in order.

    A shortfall against *expected* is logged, never raised: the caller gets a
    shorter quiz rather than a failure.
    """
    if expected is not None and len(facts) < expected:
        logger.warning(
            "Converting %d facts; %d were requested", len(facts), expected,
        )
    rng = rng or random.Random()
    return [to_multiple_choice(fact, rng) for fact in facts]
