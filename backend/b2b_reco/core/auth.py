"""
Authentication helpers for verifying marketplace access tokens.

Tokens are issued by the auth service; this service only checks the
signature and reads the caller's user id.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from b2b_reco.core.config import settings

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(request: Request) -> str:
    """
    Extract 'Bearer <token>' from Authorization header.
    """
    auth = request.headers.get("Authorization")
    if not auth:
        raise _unauthorized("Missing Authorization header")

    parts = auth.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme. Expected 'Bearer'")

    if not token.strip():
        raise _unauthorized("Empty bearer token")

    return token


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise _unauthorized("Token validation failed")


def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency: the authenticated caller's user id.

    The auth service puts it in the `userId` claim; `sub` is accepted as a
    fallback for tokens from other issuers.
    """
    token = _extract_bearer_token(request)
    payload = decode_access_token(token)

    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        raise _unauthorized("Token missing user id")
    return str(user_id)
