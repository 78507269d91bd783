"""Content item lifecycle: create with optional artifact, fetch, delete."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
import uuid

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.kinds import CONTENT_STATUSES, ContentKind, ContentKindSpec, get_kind_spec
from portal_admin.core.logger import get_logger
from portal_admin.sharing.service import normalize_distributor_ids, set_access_list, unknown_distributors
from portal_admin.storage.objects import (
    ObjectStorage,
    ObjectStorageError,
    StoredObject,
    build_object_path,
    file_extension,
    get_object_storage,
)
from portal_admin.storage.verified import VerifiedWriteError, delete_verified, execute_verified, insert_verified


logger = get_logger("portal_admin.content")

_SYSTEM_COLUMNS = {"id", "created_at", "updated_at", "created_by", "file_url", "file_path", "file_size"}


class ContentValidationError(ValueError):
    """Raised when content fields are missing or not part of the kind."""


@dataclass(frozen=True)
class ArtifactUpload:
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ContentWriteResult:
    success: bool
    kind: str
    status: str
    message: str
    content_id: Optional[str] = None
    file_url: Optional[str] = None
    warnings: tuple[str, ...] = ()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _writable_columns(spec: ContentKindSpec) -> set[str]:
    return {column.name for column in spec.model.__table__.columns} - _SYSTEM_COLUMNS


def prepare_content_fields(spec: ContentKindSpec, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Check a field mapping against the kind's table and fill defaults."""

    unknown = sorted(set(fields) - _writable_columns(spec))
    if unknown:
        raise ContentValidationError(f"unknown_fields fields={','.join(unknown)}")

    prepared = {key: value for key, value in fields.items() if value is not None}
    for required in (spec.title_field, spec.category_field):
        value = prepared.get(required)
        if not isinstance(value, str) or not value.strip():
            raise ContentValidationError(f"missing_required_field field={required}")
        prepared[required] = value.strip()

    status = str(prepared.get("status") or "draft").strip().lower()
    if status not in CONTENT_STATUSES:
        raise ContentValidationError(f"invalid_status status={status}")
    prepared["status"] = status
    return prepared


def upload_artifact(
    storage: ObjectStorage,
    spec: ContentKindSpec,
    owner_id: str,
    artifact: ArtifactUpload,
) -> StoredObject:
    path = build_object_path(owner_id, artifact.filename)
    return storage.upload(spec.bucket, path, artifact.content, artifact.content_type)


def insert_content_record(
    session: Session,
    admin: AdminContext,
    spec: ContentKindSpec,
    *,
    content_id: str,
    fields: Dict[str, Any],
    stored: Optional[StoredObject] = None,
    artifact_format: Optional[str] = None,
) -> None:
    """Insert one content row with a verified row count. Does not commit."""

    now = _now_utc()
    row: Dict[str, Any] = {
        **fields,
        "id": content_id,
        "created_by": admin.user_id,
        "created_at": now,
        "updated_at": now,
    }
    if stored is not None:
        row["file_url"] = stored.public_url
        row["file_path"] = stored.path
        row["file_size"] = stored.size_bytes
        if artifact_format and not row.get("format"):
            row["format"] = artifact_format
    insert_verified(session, spec.model, [row])


def _release_artifact(storage: ObjectStorage, spec: ContentKindSpec, path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    try:
        storage.delete(spec.bucket, path)
    except ObjectStorageError as exc:
        logger.warning("content_artifact_delete_failed", bucket=spec.bucket, path=path, error=str(exc))
        return f"artifact_not_deleted path={path}"
    return None


def create_content_item(
    session: Session,
    admin: AdminContext,
    kind: ContentKind | str,
    *,
    fields: Dict[str, Any],
    artifact: Optional[ArtifactUpload] = None,
    distributor_ids: Optional[Iterable[Optional[str]]] = None,
    storage: Optional[ObjectStorage] = None,
) -> ContentWriteResult:
    spec = get_kind_spec(kind)
    try:
        prepared = prepare_content_fields(spec, fields)
    except ContentValidationError as exc:
        return ContentWriteResult(success=False, kind=spec.kind.value, status="invalid", message=str(exc))

    allow_list = normalize_distributor_ids(distributor_ids) if distributor_ids is not None else None
    if allow_list:
        try:
            unknown = unknown_distributors(session, allow_list)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("content_distributor_check_failed", kind=spec.kind.value, error=str(exc))
            return ContentWriteResult(success=False, kind=spec.kind.value, status="failed", message=str(exc))
        if unknown:
            return ContentWriteResult(
                success=False,
                kind=spec.kind.value,
                status="invalid",
                message=f"unknown_distributors ids={','.join(unknown)}",
            )

    content_id = str(uuid.uuid4())
    stored: Optional[StoredObject] = None
    if artifact is not None:
        try:
            stored = upload_artifact(storage or get_object_storage(), spec, content_id, artifact)
        except ObjectStorageError as exc:
            logger.error("content_upload_failed", kind=spec.kind.value, filename=artifact.filename, error=str(exc))
            return ContentWriteResult(success=False, kind=spec.kind.value, status="upload_failed", message=str(exc))

    try:
        insert_content_record(
            session,
            admin,
            spec,
            content_id=content_id,
            fields=prepared,
            stored=stored,
            artifact_format=file_extension(artifact.filename).upper() if artifact else None,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error(
            "content_create_failed",
            kind=spec.kind.value,
            content_id=content_id,
            orphaned_artifact=stored.path if stored else None,
            error=str(exc),
        )
        return ContentWriteResult(success=False, kind=spec.kind.value, status="create_failed", message=str(exc))

    warnings: list[str] = []
    if allow_list is not None:
        sharing = set_access_list(session, admin, spec.kind, content_id, allow_list)
        if not sharing.success:
            warnings.append(sharing.message)

    logger.info("content_created", kind=spec.kind.value, content_id=content_id, has_artifact=stored is not None)
    return ContentWriteResult(
        success=True,
        kind=spec.kind.value,
        status="created",
        message="content_created",
        content_id=content_id,
        file_url=stored.public_url if stored else None,
        warnings=tuple(warnings),
    )


def get_content_item(session: Session, kind: ContentKind | str, content_id: str) -> Optional[Any]:
    spec = get_kind_spec(kind)
    return session.scalar(select(spec.model).where(spec.model.id == content_id))


def list_content_items(session: Session, kind: ContentKind | str, *, status: Optional[str] = None) -> list[Any]:
    spec = get_kind_spec(kind)
    statement = select(spec.model)
    if status:
        statement = statement.where(spec.model.status == status)
    return list(session.scalars(statement.order_by(spec.model.created_at.desc())).all())


def delete_content_item(
    session: Session,
    admin: AdminContext,
    kind: ContentKind | str,
    content_id: str,
    *,
    storage: Optional[ObjectStorage] = None,
) -> ContentWriteResult:
    """Remove sharing rows and the record, then release the artifact."""

    spec = get_kind_spec(kind)
    try:
        item = get_content_item(session, spec.kind, content_id)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("content_read_failed", kind=spec.kind.value, content_id=content_id, error=str(exc))
        return ContentWriteResult(
            success=False,
            kind=spec.kind.value,
            status="delete_failed",
            message=str(exc),
            content_id=content_id,
        )
    if item is None:
        return ContentWriteResult(
            success=False,
            kind=spec.kind.value,
            status="not_found",
            message="content_not_found",
            content_id=content_id,
        )
    artifact_path = item.file_path

    try:
        delete_verified(session, spec.sharing_model, spec.sharing_id_attr() == content_id)
        execute_verified(
            session,
            delete(spec.model).where(spec.model.id == content_id),
            target=spec.model.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("content_delete_failed", kind=spec.kind.value, content_id=content_id, error=str(exc))
        return ContentWriteResult(
            success=False,
            kind=spec.kind.value,
            status="delete_failed",
            message=str(exc),
            content_id=content_id,
        )

    warnings = []
    warning = _release_artifact(storage or get_object_storage(), spec, artifact_path)
    if warning:
        warnings.append(warning)

    logger.info("content_deleted", kind=spec.kind.value, content_id=content_id, requested_by=admin.user_id)
    return ContentWriteResult(
        success=True,
        kind=spec.kind.value,
        status="deleted",
        message="content_deleted",
        content_id=content_id,
        warnings=tuple(warnings),
    )
