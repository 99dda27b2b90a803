"""Bearer token issuing and verification.

Only the token layer lives here: whoever holds a valid access token is the
user named in its ``sub`` claim. Credential checks happen upstream.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from transcoder.core.config import settings

ALGORITHM = "HS256"
ACCESS = "access"


class TokenPayload(BaseModel):
    """Claims carried by every token this service issues."""

    sub: str
    exp: datetime
    iat: datetime
    type: str
    jti: str


def create_token(user_id: str, token_type: str, expires_delta: timedelta) -> tuple[str, str]:
    """Sign a token for ``user_id``.

    Returns:
        The encoded token and its ``jti``
    """
    issued_at = datetime.now(timezone.utc)
    jti = uuid.uuid4().hex
    claims = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + expires_delta,
        "type": token_type,
        "jti": jti,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM), jti


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> tuple[str, str]:
    if expires_minutes is None:
        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    return create_token(user_id, ACCESS, timedelta(minutes=expires_minutes))


def decode_token(token: str) -> Optional[TokenPayload]:
    """Verify signature and expiry; None for anything that does not check out."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload.model_validate(claims)
    except (JWTError, ValidationError):
        return None


def validate_token(token: str, expected_type: str = ACCESS) -> Optional[TokenPayload]:
    payload = decode_token(token)
    if payload is None or payload.type != expected_type:
        return None
    if payload.exp <= datetime.now(timezone.utc):
        return None
    return payload


bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """FastAPI dependency resolving the requester id from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = validate_token(credentials.credentials)
    if payload is None or not payload.sub:
        raise _unauthorized("Invalid or expired token")
    return payload.sub
