"""Caller identity for quiz ownership.

Login and signup live in the identity provider; this service only needs an
opaque owner string. Resolution order:

1. ``Authorization: Bearer <jwt>`` → the token's ``sub`` claim.
2. ``?anonymousId=anon_...`` → the browser's anonymous session id.
3. A fresh ``anon_<uuid>`` id.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quizmaker.services.auth.security import decode_token

logger = logging.getLogger(__name__)

ANONYMOUS_PREFIX = "anon_"

security = HTTPBearer(auto_error=False)


def new_anonymous_id() -> str:
    return f"{ANONYMOUS_PREFIX}{uuid.uuid4().hex}"


def is_anonymous_id(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(ANONYMOUS_PREFIX) and len(value) > len(ANONYMOUS_PREFIX)


async def get_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    anonymous_id: Optional[str] = Query(default=None, alias="anonymousId"),
) -> str:
    """Resolve the owner id for the current request."""
    if credentials is not None:
        payload = decode_token(credentials.credentials)
        if payload is None or payload.get("type") != "access" or not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return str(payload["sub"])

    if is_anonymous_id(anonymous_id):
        return anonymous_id

    if anonymous_id:
        logger.info("Ignoring malformed anonymousId %r", anonymous_id)
    return new_anonymous_id()
