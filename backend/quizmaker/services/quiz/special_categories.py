"""Special generation categories for one-word requests.

Users often paste a single keyword ("riddles", "kanji") instead of study
material. Such short inputs are matched against a small closed table; a hit
swaps the generic prompt for the category's own instructions, and the
category's content transform decides how much of the literal input to keep.

Inputs longer than ``MAX_DETECTION_LENGTH`` characters or containing a
newline are genuine source material and are never special-cased.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

MAX_DETECTION_LENGTH = 50


def _discard(_content: str) -> str:
    return ""


def _keep_as_topic(content: str) -> str:
    return f"Requested topic: {content.strip()}"


@dataclass(frozen=True)
class SpecialCategory:
    tag: str
    patterns: Tuple[str, ...]
    instructions: str
    content_transform: Callable[[str], str] = field(default=_discard)

    def matches(self, normalized: str) -> bool:
        return any(p in normalized for p in self.patterns)


SPECIAL_CATEGORIES: Dict[str, SpecialCategory] = {
    "riddles": SpecialCategory(
        tag="riddles",
        patterns=("riddle", "riddles", "brain teaser", "なぞなぞ", "謎々", "謎解き"),
        instructions="""
You write clever, entertaining riddles. The user asked for riddles themselves,
not for facts about riddles, so write actual riddles with a twist or a play on
words that makes the answer satisfying. Each statement proposes an answer to a
riddle; the learner judges whether the proposed answer is right. In the
explanation, walk through the wordplay or reasoning behind the real answer.
""",
    ),
    "kanji": SpecialCategory(
        tag="kanji",
        patterns=("kanji", "漢字", "漢検", "国語"),
        instructions="""
You write educational kanji quizzes. Test readings (on'yomi and kun'yomi),
meanings, four-character idioms, homophones and easily confused characters,
radicals and character origins, calibrated against the Japanese Kanji
Aptitude Test levels. In each explanation mention the origin of the character
or related vocabulary.
""",
    ),
    "programming": SpecialCategory(
        tag="programming",
        patterns=("programming", "programmer", "coding", "code", "プログラミング", "コーディング"),
        instructions="""
You write educational programming quizzes covering language syntax and
features, predicting what a snippet prints, algorithmic complexity, data
structures, design patterns, databases and networking, and web or mobile
development. In each explanation include the underlying concept and a
practical example.
""",
        content_transform=_keep_as_topic,
    ),
    "vocabulary": SpecialCategory(
        tag="vocabulary",
        patterns=("vocabulary", "english", "toeic", "toefl", "idiom", "英語", "英会話", "単語"),
        instructions="""
You write English-learning quizzes on grammar, vocabulary, idioms, usage and
pronunciation, ranging from beginner to business English. In each explanation
give the grammar rule, the word's origin, or similar expressions.
""",
        content_transform=_keep_as_topic,
    ),
    "trivia": SpecialCategory(
        tag="trivia",
        patterns=("trivia", "quiz", "quizzes", "general knowledge", "クイズ", "問題"),
        instructions="""
You write fun and educational general-knowledge trivia. The user gave no study
material, so draw a balanced mix of statements from history, science,
culture, sports, language and geography. In each explanation add background
so the learner picks up something new.
""",
    ),
}


def is_detection_candidate(content: str) -> bool:
    """Only short, single-line inputs are considered for special categories."""
    stripped = content.strip()
    return bool(stripped) and len(stripped) <= MAX_DETECTION_LENGTH and "\n" not in stripped


def detect_special_category(content: str) -> Optional[str]:
    """Return the tag of the first matching category, or None.

    Pure function: no I/O, safe to call before any network work.
    """
    if not is_detection_candidate(content):
        return None

    normalized = content.strip().lower()
    for tag, category in SPECIAL_CATEGORIES.items():
        if category.matches(normalized):
            return tag
    return None


def get_special_category(tag: Optional[str]) -> Optional[SpecialCategory]:
    if not tag:
        return None
    return SPECIAL_CATEGORIES.get(tag.strip().lower())
