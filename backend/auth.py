"""
Authentication for AirTrack.

Session JWT issuance and decoding. Sign-in itself happens elsewhere; this
module only turns the session cookie into a SessionContext.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Header, HTTPException, status

from backend import config
from backend.models.session import SessionContext


def create_jwt(user_id: str, name: str = "", avatar_url: str | None = None) -> str:
    """
    Create a JWT for a user session.

    Args:
        user_id: User id to encode in the token
        name: Display name shown on chat messages and notifications
        avatar_url: Optional avatar

    Returns:
        Signed JWT string
    """
    expires_at = datetime.now(UTC) + timedelta(hours=config.settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": user_id,
        "name": name,
        "avatar": avatar_url,
        "exp": expires_at,
        "iat": datetime.now(UTC),
    }
    return jwt.encode(payload, config.settings.JWT_SECRET, algorithm=config.settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e


def session_from_token(token: str) -> SessionContext:
    """
    Turn a session JWT into the SessionContext every controller and gateway
    call acts for.

    Raises:
        HTTPException: If the token is invalid or carries no user
    """
    payload = decode_jwt(token)
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        )
    return SessionContext(user_id=user_id, name=payload.get("name") or "", avatar_url=payload.get("avatar"))


async def get_session(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> SessionContext:
    """
    FastAPI dependency for the current session.

    Reads the session cookie (browser), or a Bearer JWT (scripts).
    """
    if session:
        return session_from_token(session)
    if authorization and authorization.startswith("Bearer "):
        return session_from_token(authorization.removeprefix("Bearer "))

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated. Please sign in.",
    )
