"""
FastAPI Authentication Dependencies

``require_user`` protects endpoints that act on a customer's own data
(checkout, library, form listing). ``optional_user`` lets guests compose: a
valid token attaches the user id, no token means an anonymous form.
"""
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from huggnote.auth.tokens import AccessCodeError, TokenClaims, validate_access_code

logger = logging.getLogger(__name__)

# HTTPBearer extracts the token from "Authorization: Bearer <token>" header
# auto_error=False allows us to provide custom error messages
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_valid_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenClaims:
    """
    FastAPI dependency that validates access tokens.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    if credentials is None:
        logger.warning("Access attempt without token")
        raise _unauthorized("Access code required. Please log in.")

    try:
        claims = validate_access_code(credentials.credentials)
    except AccessCodeError as e:
        logger.warning("Invalid token: %s", e)
        raise _unauthorized("Invalid or expired access code.")
    logger.debug("Valid token, expires at %s", claims["exp"])
    return claims


async def require_user(
    claims: TokenClaims = Depends(require_valid_token),
) -> str:
    """Return the authenticated user id (401 for tokens without ``sub``)."""
    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized("Access code is not bound to a user.")
    return user_id


async def optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """Return the user id when a valid token is sent, else ``None``.

    A present but invalid token is still rejected with 401.
    """
    if credentials is None:
        return None
    claims = await require_valid_token(credentials)
    return claims.get("sub")
