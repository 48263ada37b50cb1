"""
Dependency factories for FastAPI routes.

Each factory is ``lru_cache``d so the process holds exactly one instance:
the rate limiter in particular must be shared by every request and every
job in a batch. Tests swap any of them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from quizmaker.core.config import settings
from quizmaker.services.job_service import JobStore
from quizmaker.services.job_status import JobStatusService
from quizmaker.services.llm_service.llm import LangChainGenerationBackend
from quizmaker.services.quiz.generator import QuizGenerator
from quizmaker.services.quiz_store import QuizStore
from quizmaker.services.rate_limiter import GenerationRateLimiter


@lru_cache(maxsize=1)
def get_rate_limiter() -> GenerationRateLimiter:
    return GenerationRateLimiter(window_seconds=settings.GENERATION_RATE_LIMIT_SECONDS)


@lru_cache(maxsize=1)
def get_generation_backend() -> LangChainGenerationBackend:
    return LangChainGenerationBackend()


@lru_cache(maxsize=1)
def get_quiz_generator() -> QuizGenerator:
    return QuizGenerator(get_generation_backend(), get_rate_limiter())


@lru_cache(maxsize=1)
def get_job_store() -> JobStore:
    return JobStore()


@lru_cache(maxsize=1)
def get_quiz_store() -> QuizStore:
    return QuizStore()


@lru_cache(maxsize=1)
def get_job_status_service() -> JobStatusService:
    return JobStatusService(get_job_store())
