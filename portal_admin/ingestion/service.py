"""Batch ingestion: one uploaded artifact and one content record per staged file."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.kinds import ContentKind, get_kind_spec
from portal_admin.content.service import (
    ArtifactUpload,
    ContentValidationError,
    insert_content_record,
    prepare_content_fields,
    upload_artifact,
)
from portal_admin.core.config import get_settings
from portal_admin.core.logger import get_logger
from portal_admin.ingestion.titles import PendingFile
from portal_admin.sharing.service import normalize_distributor_ids, set_access_list, unknown_distributors
from portal_admin.storage.objects import ObjectStorage, ObjectStorageError, StoredObject, get_object_storage
from portal_admin.storage.verified import VerifiedWriteError


logger = get_logger("portal_admin.ingestion")

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class BatchItemResult:
    index: int
    filename: str
    title: str
    success: bool
    stage: str
    message: str
    content_id: Optional[str] = None
    file_url: Optional[str] = None


@dataclass(frozen=True)
class BatchIngestionResult:
    success: bool
    kind: str
    status: str
    message: str
    total: int
    success_count: int
    error_count: int
    items: tuple[BatchItemResult, ...] = ()


def _invalid(kind: str, message: str, total: int) -> BatchIngestionResult:
    return BatchIngestionResult(
        success=False,
        kind=kind,
        status="invalid",
        message=message,
        total=total,
        success_count=0,
        error_count=0,
    )


def _summary(success_count: int, error_count: int) -> tuple[str, str]:
    if error_count == 0:
        return "completed", f"uploaded {success_count} file{'s' if success_count != 1 else ''}"
    if success_count == 0:
        return "failed", f"failed to upload {error_count} file{'s' if error_count != 1 else ''}"
    return "partial", f"uploaded {success_count} file{'s' if success_count != 1 else ''}, {error_count} failed"


def _ingest_one(
    session: Session,
    admin: AdminContext,
    *,
    index: int,
    pending: PendingFile,
    kind: ContentKind,
    shared_fields: Dict[str, Any],
    distributor_ids: Optional[list[str]],
    storage: ObjectStorage,
) -> BatchItemResult:
    spec = get_kind_spec(kind)
    content_id = str(uuid.uuid4())
    stage = "prepare"
    stored: Optional[StoredObject] = None
    try:
        fields = prepare_content_fields(spec, {**shared_fields, spec.title_field: pending.title, "format": pending.format})

        stage = "upload"
        stored = upload_artifact(
            storage,
            spec,
            content_id,
            ArtifactUpload(filename=pending.filename, content=pending.content, content_type=pending.content_type),
        )

        stage = "create"
        insert_content_record(session, admin, spec, content_id=content_id, fields=fields, stored=stored)
        session.commit()
    except (ContentValidationError, ObjectStorageError, VerifiedWriteError, SQLAlchemyError) as exc:
        if stage == "create":
            session.rollback()
        logger.error(
            "batch_file_failed",
            kind=kind.value,
            index=index,
            filename=pending.filename,
            stage=stage,
            orphaned_artifact=stored.path if stored and stage == "create" else None,
            error=str(exc),
        )
        return BatchItemResult(
            index=index,
            filename=pending.filename,
            title=pending.title,
            success=False,
            stage=stage,
            message=str(exc),
        )

    if distributor_ids is not None:
        sharing = set_access_list(session, admin, kind, content_id, distributor_ids)
        if not sharing.success:
            logger.error(
                "batch_file_failed",
                kind=kind.value,
                index=index,
                filename=pending.filename,
                stage="sharing",
                content_id=content_id,
                error=sharing.message,
            )
            return BatchItemResult(
                index=index,
                filename=pending.filename,
                title=pending.title,
                success=False,
                stage="sharing",
                message=sharing.message,
                content_id=content_id,
                file_url=stored.public_url,
            )

    return BatchItemResult(
        index=index,
        filename=pending.filename,
        title=pending.title,
        success=True,
        stage="created",
        message="content_created",
        content_id=content_id,
        file_url=stored.public_url,
    )


def run_batch_ingestion(
    session: Session,
    admin: AdminContext,
    kind: ContentKind | str,
    files: Sequence[PendingFile],
    *,
    shared_fields: Dict[str, Any],
    distributor_ids: Optional[Iterable[Optional[str]]] = None,
    on_progress: Optional[ProgressCallback] = None,
    storage: Optional[ObjectStorage] = None,
) -> BatchIngestionResult:
    """Process staged files one after another.

    Distributor ids are checked once up front; an unknown id rejects the
    whole batch before anything is uploaded. A failing file never stops the
    ones after it, even one that raises unexpectedly. ``on_progress``
    receives ``(completed, total)`` once per file after it finishes,
    whatever its outcome. Running the same batch twice creates two sets of
    records.
    """

    spec = get_kind_spec(kind)
    total = len(files)
    if total == 0:
        return _invalid(spec.kind.value, "no_files_selected", total)
    max_files = get_settings().batch_max_files
    if total > max_files:
        return _invalid(spec.kind.value, f"too_many_files max={max_files}", total)
    try:
        prepare_content_fields(spec, {**shared_fields, spec.title_field: "batch"})
    except ContentValidationError as exc:
        return _invalid(spec.kind.value, str(exc), total)

    allow_list = normalize_distributor_ids(distributor_ids) if distributor_ids is not None else None
    if allow_list:
        try:
            unknown = unknown_distributors(session, allow_list)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("batch_distributor_check_failed", kind=spec.kind.value, error=str(exc))
            return BatchIngestionResult(
                success=False,
                kind=spec.kind.value,
                status="failed",
                message=f"distributor_check_failed: {exc}",
                total=total,
                success_count=0,
                error_count=0,
            )
        if unknown:
            return _invalid(spec.kind.value, f"unknown_distributors ids={','.join(unknown)}", total)

    backend = storage or get_object_storage()

    logger.info(
        "batch_ingestion_started",
        kind=spec.kind.value,
        total=total,
        distributor_count=len(allow_list) if allow_list is not None else None,
        requested_by=admin.user_id,
    )

    items: list[BatchItemResult] = []
    for index, pending in enumerate(files, start=1):
        try:
            item = _ingest_one(
                session,
                admin,
                index=index,
                pending=pending,
                kind=spec.kind,
                shared_fields=shared_fields,
                distributor_ids=allow_list,
                storage=backend,
            )
        except Exception as exc:
            session.rollback()
            logger.error(
                "batch_file_failed",
                kind=spec.kind.value,
                index=index,
                filename=pending.filename,
                stage="unexpected",
                error=str(exc),
            )
            item = BatchItemResult(
                index=index,
                filename=pending.filename,
                title=pending.title,
                success=False,
                stage="unexpected",
                message=f"unexpected_error: {exc}",
            )
        items.append(item)
        if on_progress is not None:
            on_progress(index, total)

    success_count = sum(1 for item in items if item.success)
    error_count = total - success_count
    status, message = _summary(success_count, error_count)
    logger.info(
        "batch_ingestion_finished",
        kind=spec.kind.value,
        status=status,
        success_count=success_count,
        error_count=error_count,
    )
    return BatchIngestionResult(
        success=success_count > 0,
        kind=spec.kind.value,
        status=status,
        message=message,
        total=total,
        success_count=success_count,
        error_count=error_count,
        items=tuple(items),
    )
