"""Admin identities: creation across three records and credential checks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re
from typing import Optional
import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import ADMIN_ROLES, AdminContext
from portal_admin.core.logger import get_logger
from portal_admin.storage.models import AdminUser, User, UserProfile
from portal_admin.storage.security import hash_password, needs_rehash, password_policy_error, verify_password
from portal_admin.storage.verified import VerifiedWriteError, execute_verified, insert_verified


logger = get_logger("portal_admin.admin_users")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PROFILE_ROLE = "admin"


@dataclass(frozen=True)
class NewAdminUser:
    email: str
    password: str
    full_name: str
    role: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class AdminUserCreationResult:
    success: bool
    status: str
    message: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    warnings: tuple[str, ...] = ()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def validate_new_admin(payload: NewAdminUser) -> Optional[str]:
    if not payload.email.strip() or not payload.password or not payload.full_name.strip() or not payload.role:
        return "email, password, fullName, and role are required"
    if not EMAIL_PATTERN.match(payload.email.strip()):
        return "Invalid email format"
    password_error = password_policy_error(payload.password)
    if password_error:
        return password_error
    if payload.role not in ADMIN_ROLES:
        return f"Invalid role. Must be one of: {', '.join(ADMIN_ROLES)}"
    return None


def _remove_identity(session: Session, user_id: str) -> None:
    try:
        execute_verified(
            session,
            delete(User).where(User.id == user_id),
            target=User.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("admin_identity_rollback_failed", user_id=user_id, error=str(exc))


def create_admin_user(session: Session, admin: AdminContext, payload: NewAdminUser) -> AdminUserCreationResult:
    """Create identity, admin record and user profile, in that order.

    A failed admin record removes the identity again. A failed user profile
    is only logged: the admin record is what the console authorizes against.
    """

    problem = validate_new_admin(payload)
    if problem:
        return AdminUserCreationResult(success=False, status="invalid", message=problem)

    email = payload.email.strip().lower()
    full_name = payload.full_name.strip()
    if session.scalar(select(User.id).where(User.email == email)) is not None:
        return AdminUserCreationResult(success=False, status="conflict", message="A user with this email already exists")

    user_id = str(uuid.uuid4())
    now = _now_utc()
    try:
        insert_verified(
            session,
            User,
            [{"id": user_id, "email": email, "password_hash": hash_password(payload.password), "is_active": True, "created_at": now}],
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("admin_identity_create_failed", email=email, error=str(exc))
        return AdminUserCreationResult(success=False, status="identity_failed", message=str(exc))

    try:
        insert_verified(
            session,
            AdminUser,
            [
                {
                    "id": user_id,
                    "email": email,
                    "full_name": full_name,
                    "phone": payload.phone or None,
                    "role": payload.role,
                    "status": "active",
                    "created_at": now,
                    "updated_at": now,
                }
            ],
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("admin_record_create_failed", user_id=user_id, email=email, error=str(exc))
        _remove_identity(session, user_id)
        return AdminUserCreationResult(
            success=False,
            status="admin_record_failed",
            message=f"Failed to create admin profile: {exc}",
        )

    warnings: list[str] = []
    try:
        insert_verified(
            session,
            UserProfile,
            [
                {
                    "id": user_id,
                    "email": email,
                    "full_name": full_name,
                    "role": PROFILE_ROLE,
                    "status": "active",
                    "created_at": now,
                    "updated_at": now,
                }
            ],
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.warning("admin_user_profile_create_failed", user_id=user_id, email=email, error=str(exc))
        warnings.append(f"user profile not created: {exc}")

    logger.info("admin_user_created", user_id=user_id, role=payload.role, created_by=admin.user_id)
    return AdminUserCreationResult(
        success=True,
        status="created",
        message="admin_user_created",
        user_id=user_id,
        email=email,
        full_name=full_name,
        role=payload.role,
        warnings=tuple(warnings),
    )


def authenticate_admin_user(session: Session, *, email: str, password: str) -> AdminUser:
    user = session.scalar(select(User).where(User.email == email.strip().lower(), User.is_active.is_(True)))
    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    admin_user = session.scalar(select(AdminUser).where(AdminUser.id == user.id))
    if admin_user is None or admin_user.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not an active admin",
        )
    if needs_rehash(user.password_hash):
        _upgrade_password_hash(session, user, password)
    return admin_user


def _upgrade_password_hash(session: Session, user: User, password: str) -> None:
    try:
        execute_verified(
            session,
            update(User).where(User.id == user.id).values(password_hash=hash_password(password)),
            target=User.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.warning("password_rehash_failed", user_id=user.id, error=str(exc))
        return
    logger.info("password_rehashed", user_id=user.id)
