"""Health check endpoints.

Checks system component availability:
- PostgreSQL database
- LLM provider configuration
- Generation rate limiter state
"""

from __future__ import annotations

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from quizmaker.core.config import settings
from quizmaker.db.prisma_client import get_prisma
from quizmaker.dependencies import get_rate_limiter
from quizmaker.services.rate_limiter import GenerationRateLimiter

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

_PROVIDER_KEYS = {
    "GOOGLE": "GOOGLE_API_KEY",
    "NVIDIA": "NVIDIA_API_KEY",
}


def _llm_configured() -> bool:
    key_name = _PROVIDER_KEYS.get(settings.LLM_PROVIDER)
    if key_name is None:
        # Local / self-hosted providers need no key
        return True
    return bool(getattr(settings, key_name))


@router.get("/health")
async def health_check(rate_limiter: GenerationRateLimiter = Depends(get_rate_limiter)):
    """Health check endpoint - verify all system components.

    Returns:
        JSON with status of each component
    """
    health_status = {
        "database": "unknown",
        "llm": "unknown",
        "overall": "unknown",
        "rate_limiter": rate_limiter.status(),
    }

    # Check PostgreSQL
    try:
        await get_prisma().query_raw("SELECT 1")
        health_status["database"] = "ok"
        logger.debug("Database health check: OK")
    except Exception as e:
        health_status["database"] = "error"
        logger.error(f"Database health check failed: {e}")

    # Remote APIs can't be tested without spending a call; check configuration only
    health_status["llm"] = "ok" if _llm_configured() else "warning"

    if health_status["database"] == "error":
        health_status["overall"] = "unhealthy"
        status_code = 503
    elif health_status["llm"] == "ok":
        health_status["overall"] = "healthy"
        status_code = 200
    else:
        health_status["overall"] = "degraded"
        status_code = 200

    return JSONResponse(content=health_status, status_code=status_code)


@router.get("/health/simple")
async def simple_health_check():
    """Simple health check - just returns 200 OK.

    For basic uptime monitoring without component checks.
    """
    return {"status": "ok"}


@router.get("/check-environment")
async def check_environment():
    """Which integrations are configured, with a warning for each gap."""
    warnings = []
    is_configured = {
        "database": bool(settings.DATABASE_URL),
        "llm": _llm_configured(),
        "cron": bool(settings.CRON_SECRET),
    }

    if not is_configured["llm"]:
        warnings.append(
            f"LLM provider {settings.LLM_PROVIDER} has no API key; quiz generation will fail."
        )
    if not is_configured["cron"]:
        warnings.append("CRON_SECRET is not set; queued quiz jobs will never be processed.")

    logger.info("Environment check: %s", is_configured)
    return {
        "warnings": warnings,
        "isConfigured": is_configured,
        "llmProvider": settings.LLM_PROVIDER,
        "environment": settings.ENVIRONMENT,
    }
