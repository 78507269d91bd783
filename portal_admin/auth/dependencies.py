"""FastAPI dependencies enforcing admin authentication and roles."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from portal_admin.auth.jwt import ADMIN_ROLES, AdminContext
from portal_admin.auth.middleware import AUTH_CONTEXT_KEY


def get_optional_admin_context(request: Request) -> Optional[AdminContext]:
    return getattr(request.state, AUTH_CONTEXT_KEY, None)


def require_admin_context(admin: Optional[AdminContext] = Depends(get_optional_admin_context)) -> AdminContext:
    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin


def require_admin_role(*allowed_roles: str) -> Callable[[AdminContext], AdminContext]:
    unknown = sorted(set(allowed_roles) - set(ADMIN_ROLES))
    if unknown or not allowed_roles:
        raise ValueError(f"unknown admin roles: {unknown}")
    allowed = frozenset(allowed_roles)

    def dependency(admin: AdminContext = Depends(require_admin_context)) -> AdminContext:
        if admin.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role {admin.role} cannot perform this action",
            )
        return admin

    return dependency
