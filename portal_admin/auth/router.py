"""Admin login route issuing bearer tokens."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal_admin.admin_users.service import authenticate_admin_user
from portal_admin.auth.jwt import AdminContext, create_access_token
from portal_admin.schemas.auth import LoginRequest, TokenResponse
from portal_admin.storage.db import get_session


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, session: Session = Depends(get_session)) -> TokenResponse:
    admin_user = authenticate_admin_user(session, email=payload.email, password=payload.password)

    token, expires_in = create_access_token(
        AdminContext(
            user_id=admin_user.id,
            email=admin_user.email,
            role=admin_user.role,
        )
    )

    return TokenResponse(
        access_token=token,
        expires_in=expires_in,
        user_id=admin_user.id,
        email=admin_user.email,
        role=admin_user.role,
    )
