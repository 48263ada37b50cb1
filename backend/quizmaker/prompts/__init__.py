"""Prompt template loader.

Each ``get_*_prompt`` function loads a ``.txt`` template from this
package directory and substitutes placeholders.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, Optional

_DIR = os.path.dirname(__file__)


@lru_cache(maxsize=32)
def _load(filename: str) -> str:
    """Read a template file, caching the result."""
    with open(os.path.join(_DIR, filename), encoding="utf-8") as f:
        return f.read()


def _render(filename: str, subs: Dict[str, str]) -> str:
    """Load *filename* and apply all substitutions."""
    text = _load(filename)
    for key, val in subs.items():
        text = text.replace(key, val)
    return text


# ── Public helpers ────────────────────────────────────────


def get_tf_json_instructions(num_questions: int, difficulty: str) -> str:
    return _render("tf_json_instructions.txt", {
        "{{NUM_QUESTIONS}}": str(num_questions),
        "{{DIFFICULTY}}": difficulty,
    }).strip()


def get_tf_quiz_prompt(content_text: str, num_questions: int, difficulty: str) -> str:
    return _render("tf_quiz_prompt.txt", {
        "{{JSON_INSTRUCTIONS}}": get_tf_json_instructions(num_questions, difficulty),
        "{{NUM_QUESTIONS}}": str(num_questions),
        "{{DIFFICULTY}}": difficulty,
        "{{CONTENT_TEXT}}": content_text,
    })


def get_special_category_prompt(
    category_instructions: str,
    content_text: str,
    num_questions: int,
    difficulty: str,
) -> str:
    """Prompt for a special category; an empty *content_text* drops the content block."""
    content_block = f"\nContent:\n{content_text}\n" if content_text else ""
    return _render("special_category_prompt.txt", {
        "{{CATEGORY_INSTRUCTIONS}}": category_instructions.strip(),
        "{{JSON_INSTRUCTIONS}}": get_tf_json_instructions(num_questions, difficulty),
        "{{CONTENT_BLOCK}}": content_block,
        "{{NUM_QUESTIONS}}": str(num_questions),
        "{{DIFFICULTY}}": difficulty,
    })


def get_similar_quiz_prompt(
    title: str,
    original_quiz_id: Optional[str],
    num_questions: int,
    difficulty: str,
) -> str:
    return _render("similar_quiz_prompt.txt", {
        "{{TITLE}}": title,
        "{{ORIGINAL_QUIZ_ID}}": original_quiz_id or "unknown",
        "{{NUM_QUESTIONS}}": str(num_questions),
        "{{DIFFICULTY}}": difficulty,
    }).strip()


def get_explanation_prompt(
    question_text: str,
    incorrect_option: str,
    correct_option: str,
    quiz_context: Optional[str] = None,
) -> str:
    context = f"\nQuiz context: {quiz_context}\n" if quiz_context else ""
    return _render("explanation_prompt.txt", {
        "{{QUIZ_CONTEXT}}": context,
        "{{QUESTION_TEXT}}": question_text,
        "{{CORRECT_OPTION}}": correct_option,
        "{{INCORRECT_OPTION}}": incorrect_option,
    })
