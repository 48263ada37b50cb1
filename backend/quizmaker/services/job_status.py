"""Read path for polling clients.

The browser client has no retry/backoff of its own, so this service never
raises: a job it cannot read is reported as still ``processing`` with a
progress estimate, and the client simply polls again.

Every response carries ``_source``:

* ``store``    – built from the job store just now
* ``cache``    – replayed from the process-local response cache
* ``fallback`` – synthesized because the store failed or has no such job

Terminal responses are cached (bounded LRU) because they never change.
In-progress responses are cached for ``JOB_STATUS_CACHE_TTL_SECONDS``.
Fallback responses are never cached. A row that exists but cannot be parsed
is reported as ``failed`` (uncached) so the client stops polling.
"""

from __future__ import annotations

import copy
import logging
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from quizmaker.core.config import settings
from quizmaker.core.exceptions import JobRecordUnreadable
from quizmaker.core.utils import utcnow
from quizmaker.models.quiz import Job, JobStatus
from quizmaker.services.job_service import JobStore

logger = logging.getLogger(__name__)

SOURCE_STORE = "store"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"


class JobStatusService:
    def __init__(
        self,
        job_store: JobStore,
        cache_ttl_seconds: Optional[float] = None,
        estimated_duration_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ):
        self.job_store = job_store
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None
            else settings.JOB_STATUS_CACHE_TTL_SECONDS
        )
        self.estimated_duration_seconds = (
            estimated_duration_seconds or settings.JOB_ESTIMATED_DURATION_SECONDS
        )
        self._max_entries = max_entries or settings.LOCAL_CACHE_MAX_ENTRIES
        self._clock = clock
        self._now = now
        # job_id → (expires_at or None for terminal, response)
        self._cache: "OrderedDict[str, Tuple[Optional[float], Dict[str, Any]]]" = OrderedDict()
        self._first_seen: "OrderedDict[str, datetime]" = OrderedDict()

    # ── Helpers ───────────────────────────────────────────

    def progress(self, created_at: datetime, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or self._now()
        elapsed = max(0.0, (now - created_at).total_seconds())
        remaining = max(0.0, self.estimated_duration_seconds - elapsed)
        return {
            "elapsedSeconds": int(elapsed),
            "estimatedRemainingSeconds": int(remaining),
        }

    def _first_seen_at(self, job_id: str) -> datetime:
        seen = self._first_seen.get(job_id)
        if seen is None:
            seen = self._now()
            self._first_seen[job_id] = seen
            while len(self._first_seen) > self._max_entries:
                self._first_seen.popitem(last=False)
        return seen

    def _cache_get(self, job_id: str) -> Optional[Dict[str, Any]]:
        entry = self._cache.get(job_id)
        if entry is None:
            return None
        expires_at, response = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._cache[job_id]
            return None
        self._cache.move_to_end(job_id)
        return response

    def _cache_put(self, job_id: str, response: Dict[str, Any], terminal: bool) -> None:
        expires_at = None if terminal else self._clock() + self.cache_ttl_seconds
        if not terminal and self.cache_ttl_seconds <= 0:
            return
        self._cache[job_id] = (expires_at, response)
        self._cache.move_to_end(job_id)
        while len(self._cache) > self._max_entries:
            self._cache.popitem(last=False)

    def invalidate(self, job_id: str) -> None:
        self._cache.pop(job_id, None)

    # ── Response builders ─────────────────────────────────

    def _from_job(self, job: Job) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "jobId": job.id,
            "status": job.status.value,
            "createdAt": job.created_at.isoformat(),
            "updatedAt": job.updated_at.isoformat(),
        }
        if job.status is JobStatus.COMPLETED and job.result is not None:
            response["result"] = job.result.to_wire()
        elif job.status is JobStatus.FAILED:
            response["error"] = job.error or "Quiz generation failed"
        elif not job.status.is_terminal:
            response["progress"] = self.progress(job.created_at)
        return response

    def _unreadable(self, exc: JobRecordUnreadable) -> Dict[str, Any]:
        now = self._now().isoformat()
        return {
            "jobId": exc.job_id,
            "status": JobStatus.FAILED.value,
            "createdAt": now,
            "updatedAt": now,
            "error": "Stored job record is unreadable",
            "_source": SOURCE_STORE,
        }

    def _fallback(self, job_id: str) -> Dict[str, Any]:
        now = self._now()
        first_seen = self._first_seen_at(job_id)
        return {
            "jobId": job_id,
            "status": JobStatus.PROCESSING.value,
            "createdAt": first_seen.isoformat(),
            "updatedAt": now.isoformat(),
            "progress": self.progress(first_seen, now),
            "_source": SOURCE_FALLBACK,
        }

    # ── Public API ────────────────────────────────────────

    async def get_status(self, job_id: str) -> Dict[str, Any]:
        """Status payload for *job_id*. Never raises for store problems."""
        cached = self._cache_get(job_id)
        if cached is not None:
            response = copy.deepcopy(cached)
            response["_source"] = SOURCE_CACHE
            return response

        try:
            job = await self.job_store.get_job(job_id)
        except JobRecordUnreadable as exc:
            # Row exists but cannot be parsed; terminal for the client.
            logger.error("Job %s has an unreadable record: %s", job_id, exc.reason)
            return self._unreadable(exc)
        except Exception as exc:
            logger.warning("Job store read failed for %s; reporting as processing: %s", job_id, exc)
            return self._fallback(job_id)

        if job is None:
            logger.info("Job %s not found; reporting as processing", job_id)
            return self._fallback(job_id)

        response = self._from_job(job)
        self._cache_put(job_id, response, terminal=job.status.is_terminal)
        self._first_seen.pop(job_id, None)

        result = copy.deepcopy(response)
        result["_source"] = SOURCE_STORE
        return result
