"""Authentication utilities — JWT bearer tokens identifying a user."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.infra.config import settings


# --- Token schemas ---


class TokenData(BaseModel):
    user_id: str
    exp: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    expires_at: datetime


# --- JWT utilities ---


def create_access_token(user_id: str) -> TokenResponse:
    """Create a JWT access token for a user."""
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {"sub": user_id, "exp": expires_at}
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return TokenResponse(
        access_token=token,
        user_id=user_id,
        expires_at=expires_at,
    )


def decode_access_token(token: str) -> TokenData:
    """Decode and validate a JWT token. Raises HTTPException on failure."""
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
        user_id: str = payload.get("sub", "")
        exp = datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc)
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token: missing subject")
        return TokenData(user_id=user_id, exp=exp)
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")


# --- FastAPI Dependencies ---

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> str:
    """Dependency: the user id carried by the Bearer token.

    Users live in the host platform; this service only trusts the token's
    subject and checks world membership per request.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    return decode_access_token(credentials.credentials).user_id
