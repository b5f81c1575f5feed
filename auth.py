"""Authentication and ownership helpers for the managed backend's auth tokens.

The auth service issues HS256 access tokens signed with the project JWT secret
(audience ``authenticated``). This module provides:

1. ``verify_token`` - signature, expiry and audience checks.
2. ``get_current_user`` - FastAPI dependency reading the bearer token (or the
   ``sb-access-token`` cookie) and returning an ``AuthUser``.
3. ``get_owned_company`` / ``require_owned_company_id`` - the single
   "session -> owned company" capability every company-scoped endpoint uses.

Environment variables expected at runtime:
    SUPABASE_JWT_SECRET    - project JWT secret
    SUPABASE_JWT_AUDIENCE  - defaults to "authenticated"

If the secret is missing the dependency raises 500 to signal mis-config.
"""
from __future__ import annotations

from typing import Optional, Union

import structlog
from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

import crud
import models
from database import get_db
from errors import AuthError, NotFoundError, UpstreamError
from settings import get_settings

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    exp: int
    aud: Union[str, list[str]]
    role: Optional[str] = None


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None


def verify_token(token: str) -> TokenPayload:
    """Verify an access token and return its payload.

    Raises AuthError (401) on failure.
    """
    settings = get_settings()
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise UpstreamError("Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
        )
        return TokenPayload.model_validate(payload)
    except JWTError as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise AuthError("Unauthorized") from exc


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


# --- FastAPI dependencies ---
async def get_current_user(request: Request) -> AuthUser:
    token = _extract_token(request)
    if not token:
        raise AuthError("Unauthorized")

    payload = verify_token(token)
    return AuthUser(id=payload.sub, email=payload.email)


def get_owned_company(db: Session, user: AuthUser) -> Optional[models.Company]:
    """The company row owned by ``user``, or None."""
    return crud.get_company_by_user_id(db, user.id)


async def require_owned_company_id(
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> str:
    company = get_owned_company(db, current_user)
    if company is None:
        raise NotFoundError("Company not found")
    return company.id
