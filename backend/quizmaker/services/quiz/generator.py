"""Quiz generation: prompt → model call → true/false facts → multiple choice.

The generator owns the whole adapter policy around the backend call:

* special-category prompt selection for one-word requests,
* the output-token budget,
* the per-call timeout,
* the rate-limit gate (acquire before the call, commit only on success),
* JSON extraction and true/false validation,
* halving the question count after a timeout.

Usage:
    generator = QuizGenerator(backend, rate_limiter)
    questions = await generator.generate_questions(text, 5, Difficulty.MEDIUM)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import List, Optional

import httpx
import requests

from quizmaker.core.config import settings
from quizmaker.core.exceptions import GenerationBackendError, GenerationTimeout
from quizmaker.models.quiz import Difficulty, Question, TrueFalseFact
from quizmaker.prompts import get_special_category_prompt, get_tf_quiz_prompt
from quizmaker.services.llm_service.json_extract import parse_json_object
from quizmaker.services.quiz.special_categories import (
    detect_special_category,
    get_special_category,
)
from quizmaker.services.quiz.transformer import convert_true_false_to_multiple_choice
from quizmaker.services.quiz.validator import validate_multiple_choice, validate_true_false
from quizmaker.services.rate_limiter import GenerationRateLimiter

logger = logging.getLogger(__name__)

MAX_HALVING_RETRIES = 2
# Counts at or below this are never halved.
MIN_HALVABLE_COUNT = 3

_TIMEOUT_TYPES = (
    asyncio.TimeoutError,
    TimeoutError,
    httpx.TimeoutException,
    requests.exceptions.Timeout,
)


def is_timeout_error(exc: BaseException) -> bool:
    """Timeout-shaped failures: timeout exception types or a timeout message."""
    if isinstance(exc, _TIMEOUT_TYPES):
        return True
    message = str(exc).lower()
    return "timeout" in message or "timed out" in message


class QuizGenerator:
    """Drives one generation backend behind the shared rate limiter."""

    def __init__(
        self,
        backend,
        rate_limiter: GenerationRateLimiter,
        rng: Optional[random.Random] = None,
        *,
        timeout_seconds: Optional[float] = None,
        temperature: Optional[float] = None,
        base_tokens: Optional[int] = None,
        tokens_per_question: Optional[int] = None,
        max_tokens: Optional[int] = None,
    ):
        self.backend = backend
        self.rate_limiter = rate_limiter
        self.rng = rng or random.Random()
        self.timeout_seconds = timeout_seconds or settings.GENERATION_TIMEOUT_SECONDS
        self.temperature = (
            temperature if temperature is not None else settings.GENERATION_TEMPERATURE
        )
        self.base_tokens = base_tokens or settings.GENERATION_BASE_TOKENS
        self.tokens_per_question = tokens_per_question or settings.GENERATION_TOKENS_PER_QUESTION
        self.max_tokens = max_tokens or settings.GENERATION_MAX_TOKENS

    # ── Prompting ─────────────────────────────────────────

    def token_budget(self, num_questions: int) -> int:
        return min(self.base_tokens + self.tokens_per_question * num_questions, self.max_tokens)

    def build_prompt(
        self,
        content: str,
        num_questions: int,
        difficulty: Difficulty,
        category: Optional[str] = None,
    ) -> str:
        """Pick the special-category prompt when one applies, else the generic one.

        An explicit *category* wins over detection; an unknown tag is ignored.
        """
        difficulty_label = Difficulty.parse(difficulty).value

        special = get_special_category(category)
        if category and special is None:
            logger.warning("Unknown quiz category %r; using detection", category)
        if special is None:
            special = get_special_category(detect_special_category(content))

        if special is None:
            return get_tf_quiz_prompt(content, num_questions, difficulty_label)

        logger.info("Using special category prompt: %s", special.tag)
        return get_special_category_prompt(
            special.instructions,
            special.content_transform(content),
            num_questions,
            difficulty_label,
        )

    # ── Backend call ──────────────────────────────────────

    async def _call_backend(self, prompt: str, max_tokens: int) -> str:
        try:
            return await asyncio.wait_for(
                self.backend.invoke(prompt, max_tokens=max_tokens, temperature=self.temperature),
                timeout=self.timeout_seconds,
            )
        except GenerationBackendError:
            raise
        except Exception as exc:
            if is_timeout_error(exc):
                raise GenerationTimeout(
                    f"Generation timed out after {self.timeout_seconds:.0f}s"
                ) from exc
            raise GenerationBackendError(f"Generation backend call failed: {exc}") from exc

    async def _attempt(
        self,
        content: str,
        num_questions: int,
        difficulty: Difficulty,
        category: Optional[str],
    ) -> List[TrueFalseFact]:
        prompt = self.build_prompt(content, num_questions, difficulty, category)
        max_tokens = self.token_budget(num_questions)

        reservation = await self.rate_limiter.acquire()
        committed = False
        started = time.perf_counter()
        try:
            text = await self._call_backend(prompt, max_tokens)
            if not text or not text.strip():
                raise GenerationBackendError("Generation backend returned an empty response")

            try:
                payload = parse_json_object(text)
            except ValueError as exc:
                raise GenerationBackendError(
                    f"Could not extract quiz data from the model response: {exc}"
                ) from exc

            facts = validate_true_false(payload, expected=num_questions)
            await self.rate_limiter.commit(reservation)
            committed = True
        finally:
            if not committed:
                await self.rate_limiter.release(reservation)

        logger.info(
            "Generated %d/%d facts (max_tokens=%d) in %.1fs",
            len(facts), num_questions, max_tokens, time.perf_counter() - started,
        )
        return facts

    # ── Public API ────────────────────────────────────────

    async def generate_facts(
        self,
        content: str,
        num_questions: int,
        difficulty: Difficulty,
        category: Optional[str] = None,
    ) -> List[TrueFalseFact]:
        """Run the backend once, halving the count after each timeout.

        Raises:
            RateLimited: The gate is cooling down (never retried here).
            GenerationBackendError: Call failed, empty body, or no JSON.
            QuizValidationError: JSON came back but is structurally wrong.
        """
        count = num_questions
        halvings = 0
        while True:
            try:
                return await self._attempt(content, count, difficulty, category)
            except GenerationTimeout:
                if count <= MIN_HALVABLE_COUNT or halvings >= MAX_HALVING_RETRIES:
                    raise
                halvings += 1
                logger.warning(
                    "Generation timed out with %d questions; retrying with %d (%d/%d)",
                    count, count // 2, halvings, MAX_HALVING_RETRIES,
                )
                count //= 2

    async def generate_questions(
        self,
        content: str,
        num_questions: int,
        difficulty: Difficulty,
        category: Optional[str] = None,
    ) -> List[Question]:
        """Full pipeline: validated, shuffled four-option questions."""
        facts = await self.generate_facts(content, num_questions, difficulty, category)
        questions = convert_true_false_to_multiple_choice(facts, rng=self.rng)
        validate_multiple_choice(questions)
        return questions
