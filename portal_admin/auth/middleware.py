"""Bearer token resolution for the request middleware."""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from portal_admin.auth.jwt import ADMIN_ROLES, AdminContext, decode_access_token
from portal_admin.core.logger import get_logger


AUTH_CONTEXT_KEY = "admin_context"

logger = get_logger("portal_admin.auth")


def bearer_token(request: Request) -> Optional[str]:
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None


def resolve_request_admin_context(request: Request) -> Optional[AdminContext]:
    """Admin identity behind the request, or None for anonymous and rejected tokens."""

    token = bearer_token(request)
    if token is None:
        return None
    try:
        context = decode_access_token(token)
    except HTTPException:
        logger.info("bearer_token_rejected", path=request.url.path)
        return None
    if context.role not in ADMIN_ROLES:
        logger.warning("bearer_token_unknown_role", path=request.url.path, role=context.role)
        return None
    return context
