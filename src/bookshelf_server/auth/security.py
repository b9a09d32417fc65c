"""
Admin Authentication

This module is responsible for:

1. Checking the admin password submitted to ``POST /api/admin/login``.
2. Issuing a short-lived admin JWT on success.
3. Verifying that JWT on admin-only routes.

Security Model
--------------
- The admin password lives only in configuration (``ADMIN_PASSWORD``).
- Tokens are HS256-signed with the admin password, so changing the password
  revokes every outstanding token.
- Tokens carry issuer, audience, subject and expiry claims.
"""

from __future__ import annotations

import secrets
import time
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import settings


TOKEN_ISSUER = "bookshelf-server"
TOKEN_AUDIENCE = "bookshelf-admin"
ADMIN_SUBJECT = "admin"


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class AdminNotConfiguredError(RuntimeError):
    """Raised when no admin password is configured."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _admin_secret() -> str:
    if not settings.admin_password or not settings.admin_password.get_secret_value():
        raise AdminNotConfiguredError("ADMIN_PASSWORD not configured")
    return settings.admin_password.get_secret_value()


def _get_current_timestamp() -> int:
    return int(time.time())


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def check_admin_password(password: str) -> bool:
    """
    Constant-time comparison against the configured admin password.

    Raises
    ------
    AdminNotConfiguredError
        If no admin password is configured.
    """
    return secrets.compare_digest(password.encode("utf-8"), _admin_secret().encode("utf-8"))


def create_admin_token() -> str:
    """
    Generate a short-lived admin JWT.

    Returns
    -------
    str
        Encoded JWT suitable for an ``Authorization: Bearer <token>`` header.
    """
    now = _get_current_timestamp()
    payload: Dict[str, Any] = {
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "sub": ADMIN_SUBJECT,
        "iat": now,
        "exp": now + settings.admin_token_ttl_seconds,
    }
    return jwt.encode(payload, _admin_secret(), algorithm=settings.jwt_algo)


def verify_admin_token(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    FastAPI dependency guarding admin routes.

    Returns
    -------
    str
        The token subject.

    Raises
    ------
    HTTPException(403) for a missing, invalid or expired token.
    HTTPException(500) if no admin password is configured.
    """
    if creds is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )

    try:
        payload = jwt.decode(
            creds.credentials,
            _admin_secret(),
            algorithms=[settings.jwt_algo],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
            options={"require": ["iss", "aud", "sub", "iat", "exp"]},
        )
    except AdminNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_PASSWORD not configured",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )

    if payload.get("sub") != ADMIN_SUBJECT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )

    return payload["sub"]
