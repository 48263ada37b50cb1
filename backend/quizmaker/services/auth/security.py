from typing import Optional

from jose import JWTError, jwt

from quizmaker.core.config import settings


def decode_token(token: str) -> Optional[dict]:
    """Verify an access token issued by the identity provider; None when invalid."""
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None
