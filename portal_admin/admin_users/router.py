"""Admin user management API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_admin.admin_users.service import NewAdminUser, create_admin_user
from portal_admin.auth.dependencies import require_admin_role
from portal_admin.auth.jwt import AdminContext
from portal_admin.schemas.admin_users import AdminUserCreateRequest, AdminUserCreateResponse, AdminUserData
from portal_admin.storage.db import get_session
from portal_admin.storage.rls import set_admin_context


router = APIRouter(prefix="/admin-users", tags=["admin-users"])

_STATUS_CODES = {
    "invalid": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "conflict": status.HTTP_409_CONFLICT,
}


@router.post("", response_model=AdminUserCreateResponse, status_code=status.HTTP_201_CREATED)
def create_admin_user_endpoint(
    payload: AdminUserCreateRequest,
    admin: AdminContext = Depends(require_admin_role("super-admin", "admin")),
    session: Session = Depends(get_session),
) -> AdminUserCreateResponse:
    set_admin_context(session, admin.user_id)
    result = create_admin_user(
        session,
        admin,
        NewAdminUser(
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            role=payload.role,
            phone=payload.phone,
        ),
    )
    if not result.success:
        raise HTTPException(
            status_code=_STATUS_CODES.get(result.status, status.HTTP_502_BAD_GATEWAY),
            detail=result.message,
        )
    return AdminUserCreateResponse(
        success=True,
        data=AdminUserData(
            id=result.user_id or "",
            email=result.email or "",
            full_name=result.full_name or "",
            role=result.role or "",
        ),
        warnings=list(result.warnings),
    )
