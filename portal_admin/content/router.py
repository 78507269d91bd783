"""Content item API routes."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_admin.api.uploads import to_artifact
from portal_admin.auth.dependencies import require_admin_context, require_admin_role
from portal_admin.auth.jwt import CONTENT_EDITOR_ROLES, AdminContext
from portal_admin.content.kinds import ContentKind
from portal_admin.content.service import (
    ContentWriteResult,
    create_content_item,
    delete_content_item,
    get_content_item,
    list_content_items,
)
from portal_admin.schemas.content import (
    ContentCreateRequest,
    ContentItemResponse,
    ContentListResponse,
    ContentWriteResponse,
)
from portal_admin.storage.db import get_session
from portal_admin.storage.objects import ObjectStorage, get_object_storage
from portal_admin.storage.rls import set_admin_context


router = APIRouter(prefix="/content", tags=["content"])

_STATUS_CODES = {
    "invalid": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
}


def serialize_item(kind: ContentKind, item: Any) -> ContentItemResponse:
    data = {column.name: getattr(item, column.name) for column in item.__table__.columns}
    return ContentItemResponse(kind=kind.value, id=item.id, data=data)


def _write_response(result: ContentWriteResult) -> ContentWriteResponse:
    if not result.success:
        raise HTTPException(
            status_code=_STATUS_CODES.get(result.status, status.HTTP_502_BAD_GATEWAY),
            detail=result.message,
        )
    return ContentWriteResponse(
        success=result.success,
        kind=result.kind,
        status=result.status,
        message=result.message,
        content_id=result.content_id,
        file_url=result.file_url,
        warnings=list(result.warnings),
    )


@router.get("/{kind}", response_model=ContentListResponse)
def list_items(
    kind: ContentKind,
    status_filter: Optional[str] = None,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> ContentListResponse:
    del admin
    items = list_content_items(session, kind, status=status_filter)
    return ContentListResponse(kind=kind.value, items=[serialize_item(kind, item) for item in items])


@router.post("/{kind}", response_model=ContentWriteResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    kind: ContentKind,
    payload: ContentCreateRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> ContentWriteResponse:
    set_admin_context(session, admin.user_id)
    result = create_content_item(
        session,
        admin,
        kind,
        fields=payload.fields,
        artifact=to_artifact(payload.file) if payload.file else None,
        distributor_ids=payload.distributor_ids,
        storage=storage,
    )
    return _write_response(result)


@router.get("/{kind}/{content_id}", response_model=ContentItemResponse)
def get_item(
    kind: ContentKind,
    content_id: str,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> ContentItemResponse:
    del admin
    item = get_content_item(session, kind, content_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="content_not_found")
    return serialize_item(kind, item)


@router.delete("/{kind}/{content_id}", response_model=ContentWriteResponse)
def delete_item(
    kind: ContentKind,
    content_id: str,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> ContentWriteResponse:
    set_admin_context(session, admin.user_id)
    return _write_response(delete_content_item(session, admin, kind, content_id, storage=storage))
