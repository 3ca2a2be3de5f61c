"""
Authentication dependencies for the academy quiz engine.

Authentication itself happens upstream; this module only extracts the
caller's identity from the bearer token it forwards.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from academy.common.logger import app_logger

logger = app_logger.getChild("auth")


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Get the current user ID from the authorization header.

    Args:
        authorization: Authorization header value ("Bearer <user id>")

    Returns:
        User ID string

    Raises:
        HTTPException: If the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer":
        logger.debug(f"Rejected authorization scheme {scheme}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )

    return token
