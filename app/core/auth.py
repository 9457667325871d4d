"""
JWT authentication for back office operators

Access tokens are short-lived bearer tokens carrying the user id and the role
the user held when the token was issued. The role is re-read from the database
on every request (see app.api.dependencies.auth), so demoting a user takes
effect immediately.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Content of the JWT token"""
    user_id: int
    role: str
    exp: int  # Unix timestamp, standard JWT claim


def create_access_token(user_id: int, role: str) -> str:
    """Create a signed access token for an operator"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured, cannot issue tokens")
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.info(
        "JWT token created",
        extra_data={"user_id": user_id, "role": role},
    )
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify a JWT token; returns None when invalid or expired"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty, tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (TypeError, ValidationError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
