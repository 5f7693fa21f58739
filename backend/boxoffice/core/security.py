"""
Security helpers.

Two independent mechanisms:
- Admin console: a short-lived JWT issued against the configured admin
  credentials, sent as a Bearer token.
- Buyers: an unguessable per-order public token. It is the only thing that
  authorizes buyer-facing order reads; no session or login is involved.
"""

import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import AuthenticationError
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)

PUBLIC_TOKEN_BYTES = 32

bearer_scheme = HTTPBearer(auto_error=False)


def generate_public_token() -> str:
    """64 hex chars from the OS CSPRNG."""
    return secrets.token_hex(PUBLIC_TOKEN_BYTES)


def tokens_match(supplied: Optional[str], expected: Optional[str]) -> bool:
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def verify_admin_credentials(email: str, password: str) -> bool:
    settings = get_settings()
    email_ok = tokens_match(email.strip().lower(), settings.ADMIN_EMAIL.lower())
    password_ok = tokens_match(password, settings.ADMIN_PASSWORD)
    return email_ok and password_ok


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "role": "admin"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")
    if payload.get("role") != "admin" or not payload.get("sub"):
        raise AuthenticationError("Invalid or expired token")
    return payload


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """FastAPI dependency returning the admin subject (email)."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    return payload["sub"]
