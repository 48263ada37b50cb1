"""Quiz generation jobs: submission and status polling."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from quizmaker.core.config import settings
from quizmaker.dependencies import get_job_status_service, get_job_store
from quizmaker.models.quiz import Difficulty, JobMetadata, JobStatus
from quizmaker.services.auth import get_user_id
from quizmaker.services.job_service import JobStore
from quizmaker.services.job_status import JobStatusService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/quiz-jobs", tags=["quiz-jobs"])

ESTIMATED_TIME = "30-60 seconds"


class QuizJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    num_questions: int = Field(default=5, alias="numQuestions")
    difficulty: str = "medium"
    original_quiz: Optional[Dict[str, Any]] = Field(default=None, alias="originalQuiz")


@router.post("")
async def create_quiz_job(
    request: QuizJobRequest,
    user_id: str = Depends(get_user_id),
    job_store: JobStore = Depends(get_job_store),
):
    """Register a "similar quiz" generation job and return immediately."""
    if not request.title or not request.title.strip() or not request.original_quiz:
        raise HTTPException(status_code=400, detail="title and originalQuiz are required")

    try:
        difficulty = Difficulty.parse(request.difficulty)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not 1 <= request.num_questions <= settings.MAX_QUESTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"numQuestions must be between 1 and {settings.MAX_QUESTIONS}",
        )

    original_id = request.original_quiz.get("id")
    metadata = JobMetadata(
        title=request.title.strip(),
        num_questions=request.num_questions,
        difficulty=difficulty,
        user_id=user_id,
        original_quiz_id=str(original_id) if original_id else None,
    )
    job_id = await job_store.create_job(metadata)
    logger.info("Queued quiz job %s for user=%s", job_id, user_id)

    return {
        "message": "Similar quiz generation job registered",
        "jobId": job_id,
        "status": JobStatus.PENDING.value,
        "estimatedTime": ESTIMATED_TIME,
    }


@router.get("/{job_id}")
async def get_quiz_job_status(
    job_id: str,
    status_service: JobStatusService = Depends(get_job_status_service),
):
    """Poll a job. Always 200; see JobStatusService for the fallback rules."""
    if not job_id.strip():
        raise HTTPException(status_code=400, detail="Job id is required")
    return await status_service.get_status(job_id.strip())
