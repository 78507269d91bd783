"""Distributor sharing API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_admin.auth.dependencies import require_admin_context, require_admin_role
from portal_admin.auth.jwt import CONTENT_EDITOR_ROLES, AdminContext
from portal_admin.content.kinds import ContentKind
from portal_admin.content.router import serialize_item
from portal_admin.content.service import get_content_item
from portal_admin.schemas.content import (
    ContentListResponse,
    SharingResponse,
    SharingUpdateRequest,
    SharingUpdateResponse,
)
from portal_admin.sharing.service import (
    SharingError,
    get_access_list,
    list_accessible_content,
    set_access_list,
    sharing_summary,
)
from portal_admin.storage.db import get_session
from portal_admin.storage.rls import set_admin_context


router = APIRouter(tags=["sharing"])

_FAILURE_CODES = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@router.get("/content/{kind}/{content_id}/sharing", response_model=SharingResponse)
def read_sharing(
    kind: ContentKind,
    content_id: str,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> SharingResponse:
    if get_content_item(session, kind, content_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="content_not_found")
    try:
        distributor_ids = get_access_list(session, admin, kind, content_id)
        summary = sharing_summary(session, admin, kind, content_id)
    except SharingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return SharingResponse(
        kind=kind.value,
        content_id=content_id,
        distributor_ids=distributor_ids,
        is_all=summary.is_all,
        label=summary.label,
        count=summary.count,
    )


@router.put("/content/{kind}/{content_id}/sharing", response_model=SharingUpdateResponse)
def replace_sharing(
    kind: ContentKind,
    content_id: str,
    payload: SharingUpdateRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> SharingUpdateResponse:
    set_admin_context(session, admin.user_id)
    result = set_access_list(session, admin, kind, content_id, payload.distributor_ids)
    if not result.success and result.status in _FAILURE_CODES:
        raise HTTPException(status_code=_FAILURE_CODES[result.status], detail=result.message)
    response = SharingUpdateResponse(
        success=result.success,
        kind=result.kind,
        content_id=result.content_id,
        status=result.status,
        message=result.message,
        distributor_ids=list(result.distributor_ids),
        requires_retry=result.requires_retry,
    )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=response.model_dump())
    return response


@router.get("/distributors/{distributor_id}/content/{kind}", response_model=ContentListResponse)
def accessible_content(
    distributor_id: str,
    kind: ContentKind,
    status_filter: Optional[str] = None,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> ContentListResponse:
    del admin
    items = list_accessible_content(session, kind, distributor_id, status=status_filter)
    return ContentListResponse(kind=kind.value, items=[serialize_item(kind, item) for item in items])
