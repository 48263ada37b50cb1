"""
Database connection modules.

- prisma_client: Prisma ORM client (jobs and quizzes)
"""

from quizmaker.db.prisma_client import get_prisma, connect_db, disconnect_db

__all__ = ["get_prisma", "connect_db", "disconnect_db"]
