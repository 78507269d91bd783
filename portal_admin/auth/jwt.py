"""JWT issue/verify primitives and the explicit admin credential object."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException, status

from portal_admin.core.config import get_settings


ADMIN_ROLES = ("super-admin", "admin", "content-manager", "viewer")
CONTENT_EDITOR_ROLES = ("super-admin", "admin", "content-manager")


@dataclass(frozen=True)
class AdminContext:
    """Authenticated admin identity threaded through every service call.

    ``access_token`` is the raw bearer credential; services that call other
    backend endpoints forward it instead of reaching for ambient state.
    """

    user_id: str
    email: str
    role: str
    access_token: str = ""


def create_access_token(context: AdminContext) -> tuple[str, int]:
    settings = get_settings()
    expires_in = settings.access_token_exp_minutes * 60
    now = datetime.now(timezone.utc)
    payload = {
        "sub": context.user_id,
        "email": context.email,
        "role": context.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, expires_in


def decode_access_token(token: str) -> AdminContext:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return AdminContext(
            user_id=str(payload["sub"]),
            email=str(payload.get("email", "")),
            role=str(payload["role"]),
            access_token=token,
        )
    except (jwt.PyJWTError, KeyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc
