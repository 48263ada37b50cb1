"""Saved quizzes of the calling user (authenticated or anonymous)."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from quizmaker.core.exceptions import QuizValidationError, StoreError
from quizmaker.dependencies import get_quiz_store
from quizmaker.models.quiz import Difficulty, Question, Quiz
from quizmaker.services.auth import get_user_id
from quizmaker.services.quiz.validator import validate_multiple_choice
from quizmaker.services.quiz_store import QuizStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/quizzes", tags=["quizzes"])


class SaveQuizRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: Optional[str] = None
    difficulty: str = "medium"
    questions: List[dict] = Field(default_factory=list)


@router.get("")
async def list_quizzes(
    user_id: str = Depends(get_user_id),
    quiz_store: QuizStore = Depends(get_quiz_store),
):
    try:
        quizzes = await quiz_store.list_for_user(user_id)
    except StoreError as e:
        logger.error("Listing quizzes failed: %s", e)
        raise HTTPException(status_code=503, detail="Quiz storage is unavailable")
    return [q.to_wire() for q in quizzes]


@router.post("")
async def save_quiz(
    request: SaveQuizRequest,
    user_id: str = Depends(get_user_id),
    quiz_store: QuizStore = Depends(get_quiz_store),
):
    """Save a generated quiz with the caller attached as its owner."""
    if not request.title or not request.title.strip():
        raise HTTPException(status_code=400, detail="title is required")

    try:
        difficulty = Difficulty.parse(request.difficulty)
        questions = [Question.model_validate(q) for q in request.questions]
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        report = validate_multiple_choice(questions)
    except QuizValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if report.repaired:
        logger.info("Saved quiz needed explanation repair for %s", report.repaired_question_ids)

    quiz = Quiz(
        id=request.id or str(uuid.uuid4()),
        title=request.title.strip(),
        difficulty=difficulty,
        questions=questions,
        user_id=user_id,
    )
    try:
        saved = await quiz_store.save(quiz)
    except StoreError as e:
        logger.error("Saving quiz failed: %s", e)
        raise HTTPException(status_code=503, detail="Quiz storage is unavailable")
    return saved.to_wire()


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: str,
    quiz_store: QuizStore = Depends(get_quiz_store),
):
    try:
        quiz = await quiz_store.get(quiz_id)
    except StoreError as e:
        logger.error("Loading quiz %s failed: %s", quiz_id, e)
        raise HTTPException(status_code=503, detail="Quiz storage is unavailable")
    if quiz is None:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz.to_wire()
