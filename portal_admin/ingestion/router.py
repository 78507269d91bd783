"""Batch ingestion API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_admin.api.uploads import to_pending_file
from portal_admin.auth.dependencies import require_admin_role
from portal_admin.auth.jwt import CONTENT_EDITOR_ROLES, AdminContext
from portal_admin.content.kinds import ContentKind
from portal_admin.ingestion.service import run_batch_ingestion
from portal_admin.schemas.content import BatchIngestRequest, BatchIngestResponse, BatchItemResponse
from portal_admin.storage.db import get_session
from portal_admin.storage.objects import ObjectStorage, get_object_storage
from portal_admin.storage.rls import set_admin_context


router = APIRouter(prefix="/content", tags=["ingestion"])


@router.post("/{kind}/batch", response_model=BatchIngestResponse)
def ingest_batch(
    kind: ContentKind,
    payload: BatchIngestRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> BatchIngestResponse:
    set_admin_context(session, admin.user_id)
    pending = [to_pending_file(item) for item in payload.files]
    progress: list[list[int]] = []

    result = run_batch_ingestion(
        session,
        admin,
        kind,
        pending,
        shared_fields=payload.shared_fields,
        distributor_ids=payload.distributor_ids,
        on_progress=lambda current, total: progress.append([current, total]),
        storage=storage,
    )
    if result.status == "invalid":
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.message)

    return BatchIngestResponse(
        success=result.success,
        kind=result.kind,
        status=result.status,
        message=result.message,
        total=result.total,
        success_count=result.success_count,
        error_count=result.error_count,
        progress=progress,
        items=[
            BatchItemResponse(
                index=item.index,
                filename=item.filename,
                title=item.title,
                success=item.success,
                stage=item.stage,
                message=item.message,
                content_id=item.content_id,
                file_url=item.file_url,
            )
            for item in result.items
        ],
    )
