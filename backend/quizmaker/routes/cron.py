"""Batch trigger for pending quiz jobs.

An external scheduler calls ``GET /cron/process-quiz-jobs`` with the shared
``x-secret-token`` header; each call processes one batch and returns.
"""

import logging
import secrets
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from quizmaker.core.config import settings
from quizmaker.dependencies import get_job_store, get_quiz_generator, get_quiz_store
from quizmaker.services.job_service import JobStore
from quizmaker.services.quiz.generator import QuizGenerator
from quizmaker.services.quiz_store import QuizStore
from quizmaker.services.worker import process_pending_jobs

logger = logging.getLogger(__name__)
router = APIRouter(tags=["jobs"])


def _secret_matches(provided: Optional[str]) -> bool:
    configured = settings.CRON_SECRET
    if not configured or not provided:
        return False
    return secrets.compare_digest(provided.encode(), configured.encode())


async def _run_batch(
    job_store: JobStore,
    quiz_store: QuizStore,
    generator: QuizGenerator,
) -> Tuple[int, Dict[str, Any]]:
    try:
        summary = await process_pending_jobs(job_store, quiz_store, generator, settings.JOB_BATCH_SIZE)
    except Exception as e:
        logger.exception("Batch job processing failed: %s", e)
        return 500, {"message": "Batch processing failed", "error": str(e)}
    return 200, summary


@router.get("/cron/process-quiz-jobs")
async def process_quiz_jobs(
    x_secret_token: Optional[str] = Header(default=None),
    job_store: JobStore = Depends(get_job_store),
    quiz_store: QuizStore = Depends(get_quiz_store),
    generator: QuizGenerator = Depends(get_quiz_generator),
):
    if not _secret_matches(x_secret_token):
        logger.warning("Unauthorized cron job attempt")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    status_code, content = await _run_batch(job_store, quiz_store, generator)
    return JSONResponse(status_code=status_code, content=content)


@router.get("/debug/trigger-job-processing")
async def trigger_job_processing(
    job_store: JobStore = Depends(get_job_store),
    quiz_store: QuizStore = Depends(get_quiz_store),
    generator: QuizGenerator = Depends(get_quiz_generator),
):
    """Development-only manual trigger; runs one batch in-process."""
    if settings.ENVIRONMENT != "development":
        return JSONResponse(
            status_code=403,
            content={"error": "This endpoint is only available in development mode"},
        )

    logger.info("Manually triggering job processing")
    status_code, content = await _run_batch(job_store, quiz_store, generator)
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=content)
    return {"message": "Triggered job processing", "result": content}
