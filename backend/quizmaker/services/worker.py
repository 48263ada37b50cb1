"""Batch worker for quiz generation jobs.

There is no in-process loop: an external scheduler calls the cron endpoint,
which runs :func:`process_pending_jobs` once. Each call drains up to
``JOB_BATCH_SIZE`` pending jobs concurrently; each job's own steps run in
order::

    claim (pending → processing)
        → prompt from metadata → generate → convert → validate
        → save quiz → completed
    (any error) → failed

Per-job failures are stored on the job and never reach sibling jobs. Only a
failure to list pending jobs is raised to the caller.

Jobs in one batch share the process-wide rate limiter, so at most one of
them gets a backend call per window; the others fail with the rate-limit
message and stay failed (there is no batch-level retry).
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from quizmaker.core.config import settings
from quizmaker.core.utils import utcnow
from quizmaker.models.quiz import Job, JobStatus, Quiz
from quizmaker.prompts import get_similar_quiz_prompt
from quizmaker.services.job_service import JobStore
from quizmaker.services.quiz.generator import QuizGenerator
from quizmaker.services.quiz_store import QuizStore

logger = logging.getLogger(__name__)


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def process_job(
    job: Job,
    job_store: JobStore,
    quiz_store: QuizStore,
    generator: QuizGenerator,
) -> Dict[str, Any]:
    """Run one job to a terminal state. Never raises."""
    try:
        claimed = await job_store.claim_job(job.id)
    except Exception as exc:
        logger.error("[WORKER] Could not claim job %s: %s", job.id, exc)
        return {"jobId": job.id, "status": "error", "error": _error_message(exc)}

    if not claimed:
        return {"jobId": job.id, "status": "skipped"}

    meta = job.metadata
    started = time.perf_counter()
    logger.info("[WORKER] Processing job %s (%d questions, %s)", job.id, meta.num_questions, meta.difficulty.value)

    try:
        content = get_similar_quiz_prompt(
            meta.title, meta.original_quiz_id, meta.num_questions, meta.difficulty.value,
        )
        questions = await generator.generate_questions(content, meta.num_questions, meta.difficulty)

        quiz = Quiz(
            id=str(uuid.uuid4()),
            title=meta.title,
            difficulty=meta.difficulty,
            questions=questions,
            created_at=utcnow(),
            user_id=meta.user_id,
        )
        quiz = await quiz_store.save(quiz)
        await job_store.update_job_status(job.id, JobStatus.COMPLETED, result=quiz)

        logger.info(
            "[WORKER] Job %s completed: quiz %s with %d questions in %.1fs",
            job.id, quiz.id, len(quiz.questions), time.perf_counter() - started,
        )
        return {"jobId": job.id, "status": "success", "quizId": quiz.id}

    except Exception as exc:
        message = _error_message(exc)
        logger.error("[WORKER] Job %s failed: %s", job.id, message)
        try:
            await job_store.update_job_status(job.id, JobStatus.FAILED, error=message)
        except Exception as write_exc:
            # The job stays in processing; nothing else can be done from here.
            logger.error("[WORKER] Could not mark job %s failed: %s", job.id, write_exc)
        return {"jobId": job.id, "status": "error", "error": message}


async def process_pending_jobs(
    job_store: JobStore,
    quiz_store: QuizStore,
    generator: QuizGenerator,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Process one batch of pending jobs.

    Returns:
        ``{"message": ..., "results": [{"jobId", "status", "quizId"|"error"}]}``

    Raises:
        StoreError: Listing pending jobs failed.
    """
    limit = limit or settings.JOB_BATCH_SIZE
    jobs = await job_store.get_pending_jobs(limit)

    if not jobs:
        logger.info("[WORKER] No pending jobs")
        return {"message": "No pending jobs", "results": []}

    logger.info("[WORKER] Processing %d pending job(s)", len(jobs))
    results: List[Dict[str, Any]] = list(
        await asyncio.gather(
            *(process_job(job, job_store, quiz_store, generator) for job in jobs)
        )
    )
    return {"message": f"Processed {len(results)} jobs", "results": results}
