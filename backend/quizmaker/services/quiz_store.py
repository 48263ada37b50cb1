"""Persistence for finished quizzes (``quizzes`` table)."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from quizmaker.core.exceptions import StoreError
from quizmaker.core.utils import as_utc, sanitize_null_bytes, utcnow
from quizmaker.db.prisma_client import get_prisma
from quizmaker.models.quiz import Question, Quiz

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS quizzes (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    difficulty  TEXT NOT NULL,
    questions   JSONB NOT NULL,
    user_id     TEXT,
    created_at  TIMESTAMP(3) NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class QuizStore:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        return self._db if self._db is not None else get_prisma()

    @staticmethod
    def _from_row(row) -> Quiz:
        questions = row.questions
        if isinstance(questions, str):
            questions = json.loads(questions)
        return Quiz(
            id=row.id,
            title=row.title,
            difficulty=row.difficulty,
            questions=[Question.model_validate(q) for q in questions or []],
            created_at=as_utc(row.createdAt),
            user_id=row.userId,
        )

    async def ensure_table(self) -> bool:
        try:
            await self.db.execute_raw(_CREATE_TABLE_SQL)
            return True
        except Exception as exc:
            logger.warning("Could not ensure quizzes table (non-fatal): %s", exc)
            return False

    async def save(self, quiz: Quiz) -> Quiz:
        """Insert *quiz*, stamping ``created_at`` when missing.

        Raises:
            StoreError: The insert failed.
        """
        if quiz.created_at is None:
            quiz = quiz.model_copy(update={"created_at": utcnow()})

        questions = [q.to_wire() for q in quiz.questions]
        try:
            await self.db.quiz.create(
                data={
                    "id": quiz.id,
                    "title": sanitize_null_bytes(quiz.title),
                    "difficulty": quiz.difficulty.value,
                    "questions": json.dumps(sanitize_null_bytes(questions)),
                    "userId": quiz.user_id,
                    "createdAt": quiz.created_at,
                }
            )
        except Exception as exc:
            raise StoreError(f"Could not save quiz {quiz.id}: {exc}") from exc

        logger.info("Saved quiz %s (%d questions) for user=%s", quiz.id, len(quiz.questions), quiz.user_id)
        return quiz

    async def get(self, quiz_id: str) -> Optional[Quiz]:
        try:
            row = await self.db.quiz.find_unique(where={"id": quiz_id})
        except Exception as exc:
            raise StoreError(f"Could not load quiz {quiz_id}: {exc}") from exc
        return self._from_row(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Quiz]:
        """The user's quizzes, newest first."""
        try:
            rows = await self.db.quiz.find_many(
                where={"userId": user_id},
                order={"createdAt": "desc"},
            )
        except Exception as exc:
            raise StoreError(f"Could not list quizzes: {exc}") from exc
        return [self._from_row(row) for row in rows]
