"""FastAPI dependency injection for the acting identity, plus error translation.

Resolves the Actor for a request from a Bearer JWT. Requests without a
token get the explicit anonymous actor when ALLOW_ANONYMOUS is set; no
user record is looked up or created on their behalf.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from src.huddle.config import get_settings
from src.huddle.meetings.errors import (
    ConflictError,
    InvalidStateError,
    NeutralizationFailedError,
    NotFoundError,
    QuotaExceededError,
)
from src.huddle.meetings.schemas import Actor, ActorKind
from src.huddle.services.llm import InferenceError, InferenceQuotaExceededError


def verify_token(token: str) -> dict:
    """Decode and validate a JWT access token.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception
    if not payload.get("sub"):
        raise credentials_exception
    return payload


async def get_current_actor(request: Request) -> Actor:
    """Resolve the actor performing this request.

    Raises:
        HTTPException(401): Invalid token, or no token while anonymous
            access is disabled.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[7:])
        return Actor(
            id=str(payload["sub"]),
            display_name=payload.get("name") or payload.get("email") or str(payload["sub"]),
            kind=ActorKind.USER,
        )

    if get_settings().ALLOW_ANONYMOUS:
        return Actor.anonymous()

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


# ── Domain Error Translation ─────────────────────────────────────────────────


def http_error(exc: Exception) -> HTTPException:
    """Translate a domain or inference exception into an HTTPException."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, QuotaExceededError):
        return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NeutralizationFailedError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NeutralizationFailedError.PUBLIC_MESSAGE,
        )
    if isinstance(exc, InferenceQuotaExceededError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="AI quota exceeded. Please try again later.",
        )
    if isinstance(exc, InferenceError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Inference failed: {exc}",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )
