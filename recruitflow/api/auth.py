"""
Principal adapter: turns the request's bearer token into an Actor.

Tokens are issued elsewhere; this module only verifies them and extracts the username.
"""
import logging
from typing import Optional

import jwt
from fastapi import Header, HTTPException, Request, status

from recruitflow.config import settings
from recruitflow.models.actor import Actor

logger = logging.getLogger(__name__)


def extract_token(authorization: str) -> str:
    """Accepts both ``Bearer <token>`` and a bare token."""
    if authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return authorization.strip()


def get_actor(request: Request, authorization: Optional[str] = Header(None)) -> Actor:
    """Dependency for FastAPI endpoints that mutate or read applicants."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = jwt.decode(
            extract_token(authorization),
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError as e:
        logger.info("Token verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    username = claims.get("username") or claims.get("sub") or ""
    return Actor(
        username=str(username),
        ip=request.client.host if request.client else None,
    )
