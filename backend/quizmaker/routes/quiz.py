"""Synchronous quiz generation and on-demand explanations."""

import logging
import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from quizmaker.core.config import settings
from quizmaker.core.exceptions import GenerationBackendError, QuizValidationError, RateLimited
from quizmaker.core.utils import utcnow
from quizmaker.dependencies import get_generation_backend, get_quiz_generator
from quizmaker.models.quiz import Difficulty, Quiz
from quizmaker.services.quiz.explainer import explain_incorrect_option
from quizmaker.services.quiz.generator import QuizGenerator

logger = logging.getLogger(__name__)
router = APIRouter(tags=["quiz"])


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    content: Optional[str] = None
    num_questions: int = Field(default=5, alias="numQuestions")
    difficulty: str = "medium"
    category: Optional[str] = None


class ExplainRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_text: Optional[str] = Field(default=None, alias="questionText")
    incorrect_option_text: Optional[str] = Field(default=None, alias="incorrectOptionText")
    correct_option_text: Optional[str] = Field(default=None, alias="correctOptionText")
    question_id: Optional[str] = Field(default=None, alias="questionId")
    incorrect_option_id: Optional[str] = Field(default=None, alias="incorrectOptionId")
    quiz_context: Optional[str] = Field(default=None, alias="quizContext")


def rate_limited_exception(exc: RateLimited) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail=str(exc),
        headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
    )


@router.post("/generate")
async def generate(
    request: GenerateRequest,
    generator: QuizGenerator = Depends(get_quiz_generator),
):
    """Generate a quiz in the request. The quiz has no owner until saved."""
    if not request.title or not request.title.strip() or not request.content or not request.content.strip():
        raise HTTPException(status_code=400, detail="title and content are required")

    try:
        difficulty = Difficulty.parse(request.difficulty)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not 1 <= request.num_questions <= settings.MAX_QUESTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"numQuestions must be between 1 and {settings.MAX_QUESTIONS}",
        )

    try:
        questions = await generator.generate_questions(
            request.content, request.num_questions, difficulty, request.category,
        )
    except RateLimited as e:
        raise rate_limited_exception(e)
    except (GenerationBackendError, QuizValidationError) as e:
        logger.error("Quiz generation failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to generate quiz: {e}")

    quiz = Quiz(
        id=str(uuid.uuid4()),
        title=request.title.strip(),
        difficulty=difficulty,
        questions=questions,
        created_at=utcnow(),
    )
    return quiz.to_wire()


@router.post("/explain")
async def explain(
    request: ExplainRequest,
    backend=Depends(get_generation_backend),
):
    """Detailed explanation of why one option is wrong."""
    if not (request.question_text and request.incorrect_option_text and request.correct_option_text):
        raise HTTPException(
            status_code=400,
            detail="questionText, incorrectOptionText and correctOptionText are required",
        )

    logger.info(
        "Explanation requested for question=%s option=%s",
        request.question_id, request.incorrect_option_id,
    )
    try:
        explanation = await explain_incorrect_option(
            backend,
            request.question_text,
            request.incorrect_option_text,
            request.correct_option_text,
            request.quiz_context,
        )
    except GenerationBackendError as e:
        raise HTTPException(status_code=502, detail=f"Failed to generate explanation: {e}")

    return {
        "explanation": explanation,
        "questionId": request.question_id,
        "incorrectOptionId": request.incorrect_option_id,
    }
