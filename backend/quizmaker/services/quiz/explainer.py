"""On-demand explanations for a wrong answer the learner picked."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from quizmaker.core.config import settings
from quizmaker.core.exceptions import GenerationBackendError
from quizmaker.prompts import get_explanation_prompt

logger = logging.getLogger(__name__)


async def explain_incorrect_option(
    backend,
    question_text: str,
    incorrect_option: str,
    correct_option: str,
    quiz_context: Optional[str] = None,
) -> str:
    """Ask the backend why *incorrect_option* is wrong.

    Not gated by the generation rate limiter: explanations are short and
    requested one at a time while the learner reviews answers.

    Raises:
        GenerationBackendError: The call failed, timed out, or returned nothing.
    """
    prompt = get_explanation_prompt(question_text, incorrect_option, correct_option, quiz_context)
    try:
        text = await asyncio.wait_for(
            backend.invoke(
                prompt,
                max_tokens=settings.EXPLAIN_MAX_TOKENS,
                temperature=settings.EXPLAIN_TEMPERATURE,
            ),
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
        )
    except GenerationBackendError:
        raise
    except Exception as exc:
        logger.error("Explanation request failed: %s", exc)
        raise GenerationBackendError(f"Explanation request failed: {exc}") from exc

    text = (text or "").strip()
    if not text:
        raise GenerationBackendError("Generation backend returned an empty explanation")
    return text
