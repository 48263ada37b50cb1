"""Quiz generation job store.

Two tiers, with explicit precedence:

1. **Durable** – the ``quiz_generation_jobs`` table via Prisma.
2. **Local** – a bounded, process-local LRU of recently seen jobs.

The durable store wins whenever it has the key. The local tier answers only
when the durable store has no row for the id or cannot be reached. A job
whose durable insert failed is tracked as *local-only*; every later
operation on it (claim, status writes, pending listing) runs against the
local tier so the job can still finish inside this process.

Status writes are conditional updates (``WHERE status IN (...)``) so the
lifecycle can only move forward even when two workers race:

::

    pending ──► processing ──► completed
                          └──► failed
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set

from quizmaker.core.config import settings
from quizmaker.core.exceptions import (
    InvalidJobTransition,
    JobNotFound,
    JobRecordUnreadable,
    StoreError,
)
from quizmaker.core.utils import as_utc, sanitize_null_bytes, utcnow
from quizmaker.db.prisma_client import get_prisma
from quizmaker.models.quiz import (
    Job,
    JobMetadata,
    JobStatus,
    Quiz,
    allowed_predecessors,
    can_transition,
)

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS quiz_generation_jobs (
    id          TEXT PRIMARY KEY,
    status      TEXT NOT NULL DEFAULT 'pending',
    metadata    JSONB NOT NULL,
    result      JSONB,
    error       TEXT,
    created_at  TIMESTAMP(3) NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at  TIMESTAMP(3) NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

_CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS quiz_generation_jobs_status_created_at_idx
    ON quiz_generation_jobs (status, created_at)
"""


def _json_field(value: Any) -> Any:
    """JSONB columns come back as dicts from Prisma, but as strings from some drivers."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except (ValueError, TypeError):
            return None
    return value


class JobStore:
    """Durable job repository with a bounded local fallback tier."""

    def __init__(
        self,
        db=None,
        cache_max_entries: Optional[int] = None,
        clock: Callable = utcnow,
    ):
        self._db = db
        self._clock = clock
        self._cache_max = cache_max_entries or settings.LOCAL_CACHE_MAX_ENTRIES
        self._cache: "OrderedDict[str, Job]" = OrderedDict()
        self._local_only: Set[str] = set()

    @property
    def db(self):
        return self._db if self._db is not None else get_prisma()

    # ── Local tier ────────────────────────────────────────

    def _remember(self, job: Job) -> None:
        self._cache[job.id] = job
        self._cache.move_to_end(job.id)
        while len(self._cache) > self._cache_max:
            evicted, _ = self._cache.popitem(last=False)
            # A local-only job that falls out of the cache is gone for good.
            if evicted in self._local_only:
                self._local_only.discard(evicted)
                logger.warning("Evicted local-only job %s from the job cache", evicted)

    def cached(self, job_id: str) -> Optional[Job]:
        return self._cache.get(job_id)

    @staticmethod
    def _with_status(
        job: Job,
        status: JobStatus,
        updated_at,
        result: Optional[Quiz] = None,
        error: Optional[str] = None,
    ) -> Job:
        return Job(
            id=job.id,
            status=status,
            created_at=job.created_at,
            updated_at=updated_at,
            metadata=job.metadata,
            result=result,
            error=error,
        )

    # ── Row mapping ───────────────────────────────────────

    @staticmethod
    def _from_row(row) -> Job:
        status = JobStatus(row.status)
        raw_result = _json_field(row.result)
        result = None
        if status is JobStatus.COMPLETED and raw_result:
            # Older rows wrapped the quiz as {"result": {...}}
            if isinstance(raw_result, dict) and "questions" not in raw_result and "result" in raw_result:
                raw_result = raw_result["result"]
            result = Quiz.model_validate(raw_result)
        return Job(
            id=row.id,
            status=status,
            created_at=as_utc(row.createdAt),
            updated_at=as_utc(row.updatedAt),
            metadata=JobMetadata.model_validate(_json_field(row.metadata)),
            result=result,
            error=row.error,
        )

    def _parse_row(self, row) -> Job:
        """Like :meth:`_from_row`, but a malformed record raises :class:`JobRecordUnreadable`."""
        try:
            return self._from_row(row)
        except (ValueError, TypeError, AttributeError) as exc:
            reason = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
            raise JobRecordUnreadable(row.id, getattr(row, "status", None), reason) from exc

    async def _fail_unreadable(self, job_id: str, reason: str) -> None:
        """Move a pending job whose record cannot be parsed straight to ``failed``."""
        try:
            await self.db.quizjob.update_many(
                where={"id": job_id, "status": JobStatus.PENDING.value},
                data={
                    "status": JobStatus.FAILED.value,
                    "error": sanitize_null_bytes(f"Stored job record is unreadable: {reason}"),
                    "updatedAt": self._clock(),
                },
            )
        except Exception as exc:
            logger.error("Could not mark unreadable job %s failed: %s", job_id, exc)

    # ── Public API ────────────────────────────────────────

    async def ensure_table(self) -> bool:
        """Create the jobs table if missing. Failure is logged, never raised."""
        try:
            await self.db.execute_raw(_CREATE_TABLE_SQL)
            await self.db.execute_raw(_CREATE_INDEX_SQL)
            logger.info("Ensured quiz_generation_jobs table exists")
            return True
        except Exception as exc:
            logger.warning("Could not ensure quiz_generation_jobs table (non-fatal): %s", exc)
            return False

    async def create_job(self, metadata: JobMetadata) -> str:
        """Create a ``pending`` job and return its id.

        A failed durable insert is logged and the job lives on in the local
        tier; the id is returned either way.
        """
        now = self._clock()
        job = Job(
            id=str(uuid.uuid4()),
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
            metadata=metadata,
        )
        self._remember(job)

        try:
            await self.db.quizjob.create(
                data={
                    "id": job.id,
                    "status": JobStatus.PENDING.value,
                    # Prisma Python requires json.dumps() for Json fields
                    "metadata": json.dumps(sanitize_null_bytes(metadata.to_wire())),
                    "createdAt": now,
                    "updatedAt": now,
                }
            )
            logger.info("Created quiz job %s for user=%s", job.id, metadata.user_id)
        except Exception as exc:
            self._local_only.add(job.id)
            logger.error("Durable insert for job %s failed; keeping it locally: %s", job.id, exc)

        return job.id

    async def claim_job(self, job_id: str) -> bool:
        """Move a job ``pending → processing`` if nobody else has.

        Returns:
            True when this caller won the claim.

        Raises:
            StoreError: The durable store is unreachable.
        """
        now = self._clock()

        if job_id in self._local_only:
            job = self._cache.get(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                return False
            self._remember(self._with_status(job, JobStatus.PROCESSING, now))
            return True

        try:
            count = await self.db.quizjob.update_many(
                where={"id": job_id, "status": JobStatus.PENDING.value},
                data={"status": JobStatus.PROCESSING.value, "updatedAt": now},
            )
        except Exception as exc:
            raise StoreError(f"Could not claim job {job_id}: {exc}") from exc

        if not count:
            logger.info("Job %s was already claimed", job_id)
            return False

        cached = self._cache.get(job_id)
        if cached is not None:
            self._remember(self._with_status(cached, JobStatus.PROCESSING, now))
        return True

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        result: Optional[Quiz] = None,
        error: Optional[str] = None,
    ) -> None:
        """Forward-only status write that refreshes ``updatedAt``.

        Raises:
            ValueError: ``result`` without ``completed`` or ``error`` without ``failed``.
            JobNotFound: No row for *job_id*.
            InvalidJobTransition: The write would move the job backwards.
            StoreError: The durable store is unreachable.
        """
        status = JobStatus(status)
        if result is not None and status is not JobStatus.COMPLETED:
            raise ValueError("result may only be stored on a completed job")
        if error is not None and status is not JobStatus.FAILED:
            raise ValueError("error may only be stored on a failed job")

        now = self._clock()

        if job_id in self._local_only:
            job = self._cache.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if not can_transition(job.status, status):
                raise InvalidJobTransition(job_id, job.status.value, status.value)
            self._remember(self._with_status(job, status, now, result, error))
            return

        data: Dict[str, Any] = {"status": status.value, "updatedAt": now}
        if result is not None:
            data["result"] = json.dumps(sanitize_null_bytes(result.to_wire()))
        if error is not None:
            data["error"] = sanitize_null_bytes(error)

        row = None
        try:
            count = await self.db.quizjob.update_many(
                where={
                    "id": job_id,
                    "status": {"in": [s.value for s in allowed_predecessors(status)]},
                },
                data=data,
            )
            if not count:
                row = await self.db.quizjob.find_unique(where={"id": job_id})
        except Exception as exc:
            raise StoreError(f"Could not update job {job_id}: {exc}") from exc

        if not count:
            if row is None:
                raise JobNotFound(job_id)
            raise InvalidJobTransition(job_id, row.status, status.value)

        logger.info("Updated job %s status=%s", job_id, status.value)
        cached = self._cache.get(job_id)
        if cached is not None:
            self._remember(self._with_status(cached, status, now, result, error))

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Durable row if there is one, else the local copy, else None.

        Raises:
            JobRecordUnreadable: The row exists but cannot be parsed.
            StoreError: The durable store is unreachable and nothing is cached.
        """
        if job_id in self._local_only:
            return self._cache.get(job_id)

        try:
            row = await self.db.quizjob.find_unique(where={"id": job_id})
        except Exception as exc:
            cached = self._cache.get(job_id)
            if cached is not None:
                logger.warning("Job store unreachable; serving job %s from local cache", job_id)
                return cached
            raise StoreError(f"Could not load job {job_id}: {exc}") from exc

        if row is None:
            return self._cache.get(job_id)

        job = self._parse_row(row)
        self._remember(job)
        return job

    async def get_pending_jobs(self, limit: Optional[int] = None) -> List[Job]:
        """Up to *limit* pending jobs, oldest first.

        Rows that cannot be parsed are marked ``failed`` and left out, so one
        bad record never blocks the queue.

        Raises:
            StoreError: The durable listing failed.
        """
        limit = limit or settings.JOB_BATCH_SIZE
        try:
            rows = await self.db.quizjob.find_many(
                where={"status": JobStatus.PENDING.value},
                order={"createdAt": "asc"},
                take=limit,
            )
        except Exception as exc:
            raise StoreError(f"Could not list pending jobs: {exc}") from exc

        jobs: List[Job] = []
        for row in rows:
            try:
                jobs.append(self._parse_row(row))
            except JobRecordUnreadable as exc:
                logger.error("Skipping pending job %s: %s", exc.job_id, exc.reason)
                await self._fail_unreadable(exc.job_id, exc.reason)
        local = [
            self._cache[job_id]
            for job_id in self._local_only
            if job_id in self._cache and self._cache[job_id].status is JobStatus.PENDING
        ]
        jobs.extend(local)
        jobs.sort(key=lambda j: j.created_at)
        return jobs[:limit]
