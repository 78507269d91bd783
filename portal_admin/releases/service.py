"""Software release catalogue and the release publication saga.

The saga runs validate, upload, create, target and (optionally) publish in
that order. Steps that completed are not rolled back when a later step
fails; the result names the failed step and the steps already committed so
an operator knows what is left behind. ``release_compensation_enabled``
turns on cleanup of the uploaded artifact (and the record, when targeting
fails).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.service import ArtifactUpload
from portal_admin.core.config import get_settings
from portal_admin.core.logger import get_logger
from portal_admin.integrations.email import ResendClient
from portal_admin.releases.notifications import notify_release_targets
from portal_admin.releases.targeting import TARGET_DEVICES, TARGET_DISTRIBUTORS, ReleaseTargeting
from portal_admin.storage.models import ReleaseTargetDevice, ReleaseTargetDistributor, SoftwareRelease
from portal_admin.storage.objects import (
    ObjectStorage,
    ObjectStorageError,
    StoredObject,
    build_object_path,
    get_object_storage,
)
from portal_admin.storage.verified import VerifiedWriteError, delete_verified, execute_verified, insert_verified


logger = get_logger("portal_admin.releases")

RELEASE_BUCKET = "software-releases"
RELEASE_FOLDER = "releases"
RELEASE_TYPES = ("firmware", "software", "patch", "hotfix", "driver")
RELEASE_STATUSES = ("draft", "published", "deprecated", "recalled")

SECTION_BASIC = "basic"
SECTION_FILE = "file"
SECTION_TARGETING = "targeting"


class ReleaseValidationError(ValueError):
    """Raised for input problems; ``section`` names the form section to revisit."""

    def __init__(self, message: str, *, section: str) -> None:
        super().__init__(message)
        self.section = section


@dataclass(frozen=True)
class ReleaseDraft:
    name: str
    version: str
    release_type: str
    artifact: Optional[ArtifactUpload]
    targeting: ReleaseTargeting = field(default_factory=ReleaseTargeting.everyone)
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    description: Optional[str] = None
    release_notes: Optional[str] = None
    changelog: Optional[str] = None
    min_previous_version: Optional[str] = None
    is_mandatory: bool = False
    notify_on_publish: bool = True
    release_date: Optional[datetime] = None
    publish_immediately: bool = False


@dataclass(frozen=True)
class ReleaseSagaResult:
    success: bool
    status: str
    message: str
    failed_step: Optional[str] = None
    section: Optional[str] = None
    committed_steps: tuple[str, ...] = ()
    release_id: Optional[str] = None
    file_url: Optional[str] = None
    orphaned_artifact: Optional[str] = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReleaseActionResult:
    success: bool
    release_id: str
    status: str
    message: str
    requires_retry: bool = False
    warnings: tuple[str, ...] = ()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_release_draft(draft: ReleaseDraft) -> ReleaseDraft:
    """Trim the identifying fields and lower-case the release type."""

    return replace(
        draft,
        name=draft.name.strip(),
        version=draft.version.strip(),
        release_type=draft.release_type.strip().lower(),
    )


def validate_release_draft(draft: ReleaseDraft) -> None:
    """Pure input checks, run before anything touches storage or the database."""

    draft = normalize_release_draft(draft)
    if not draft.name or not draft.version or not draft.release_type:
        raise ReleaseValidationError("name, version and release type are required", section=SECTION_BASIC)
    if draft.release_type not in RELEASE_TYPES:
        raise ReleaseValidationError(f"unknown release type: {draft.release_type}", section=SECTION_BASIC)
    if draft.artifact is None or not draft.artifact.content:
        raise ReleaseValidationError("a release file is required", section=SECTION_FILE)
    if draft.targeting.mode == TARGET_DISTRIBUTORS and not draft.targeting.ids:
        raise ReleaseValidationError("select at least one distributor", section=SECTION_TARGETING)
    if draft.targeting.mode == TARGET_DEVICES and not draft.targeting.ids:
        raise ReleaseValidationError("select at least one device", section=SECTION_TARGETING)


def _version_taken(session: Session, release_type: str, version: str, *, exclude_id: Optional[str] = None) -> bool:
    statement = select(SoftwareRelease.id).where(
        SoftwareRelease.release_type == release_type,
        SoftwareRelease.version == version,
    )
    if exclude_id:
        statement = statement.where(SoftwareRelease.id != exclude_id)
    return session.scalar(statement) is not None


def _insert_release(
    session: Session,
    admin: AdminContext,
    *,
    release_id: str,
    draft: ReleaseDraft,
    stored: StoredObject,
) -> None:
    now = _now_utc()
    insert_verified(
        session,
        SoftwareRelease,
        [
            {
                "id": release_id,
                "name": draft.name,
                "version": draft.version,
                "release_type": draft.release_type,
                "product_id": draft.product_id or None,
                "product_name": draft.product_name or None,
                "file_url": stored.public_url,
                "file_path": stored.path,
                "file_name": draft.artifact.filename if draft.artifact else stored.path,
                "file_size": stored.size_bytes,
                "checksum": stored.sha256,
                "description": draft.description,
                "release_notes": draft.release_notes,
                "changelog": draft.changelog,
                "min_previous_version": draft.min_previous_version or None,
                "target_type": draft.targeting.mode,
                "is_mandatory": draft.is_mandatory,
                "notify_on_publish": draft.notify_on_publish,
                "status": "draft",
                "release_date": draft.release_date or now,
                "created_by": admin.user_id,
                "created_at": now,
                "updated_at": now,
            }
        ],
    )


def replace_release_targets(session: Session, release_id: str, targeting: ReleaseTargeting) -> int:
    """Swap every target row of a release for the given selection. Does not commit."""

    delete_verified(session, ReleaseTargetDistributor, ReleaseTargetDistributor.release_id == release_id)
    delete_verified(session, ReleaseTargetDevice, ReleaseTargetDevice.release_id == release_id)
    if targeting.mode == TARGET_DISTRIBUTORS:
        return insert_verified(
            session,
            ReleaseTargetDistributor,
            [{"release_id": release_id, "distributor_id": distributor_id} for distributor_id in targeting.ids],
        )
    if targeting.mode == TARGET_DEVICES:
        return insert_verified(
            session,
            ReleaseTargetDevice,
            [{"release_id": release_id, "device_id": device_id} for device_id in targeting.ids],
        )
    return 0


def _discard_artifact(storage: ObjectStorage, stored: StoredObject) -> Optional[str]:
    try:
        storage.delete(stored.bucket, stored.path)
    except ObjectStorageError as exc:
        logger.warning("release_artifact_cleanup_failed", path=stored.path, error=str(exc))
        return stored.path
    logger.info("release_artifact_cleaned_up", path=stored.path)
    return None


def _failed_step(
    *,
    step: str,
    status: str,
    message: str,
    committed: list[str],
    release_id: Optional[str] = None,
    stored: Optional[StoredObject] = None,
    orphaned_artifact: Optional[str] = None,
    section: Optional[str] = None,
) -> ReleaseSagaResult:
    logger.error(
        "release_saga_step_failed",
        step=step,
        committed_steps=list(committed),
        release_id=release_id,
        orphaned_artifact=orphaned_artifact,
        error=message,
    )
    return ReleaseSagaResult(
        success=False,
        status=status,
        message=message,
        failed_step=step,
        section=section,
        committed_steps=tuple(committed),
        release_id=release_id,
        file_url=stored.public_url if stored else None,
        orphaned_artifact=orphaned_artifact,
    )


def create_release(
    session: Session,
    admin: AdminContext,
    draft: ReleaseDraft,
    *,
    storage: Optional[ObjectStorage] = None,
    email_client: Optional[ResendClient] = None,
) -> ReleaseSagaResult:
    committed: list[str] = []
    draft = normalize_release_draft(draft)

    try:
        validate_release_draft(draft)
    except ReleaseValidationError as exc:
        return ReleaseSagaResult(
            success=False,
            status="invalid",
            message=str(exc),
            failed_step="validate",
            section=exc.section,
        )
    try:
        taken = _version_taken(session, draft.release_type, draft.version)
    except SQLAlchemyError as exc:
        session.rollback()
        return _failed_step(step="validate", status="failed", message=str(exc), committed=committed)
    if taken:
        return ReleaseSagaResult(
            success=False,
            status="invalid",
            message=f'A {draft.release_type} release with version "{draft.version}" already exists',
            failed_step="validate",
            section=SECTION_BASIC,
        )
    committed.append("validate")

    settings = get_settings()
    backend = storage or get_object_storage()
    release_id = str(uuid.uuid4())

    try:
        stored = backend.upload(
            RELEASE_BUCKET,
            build_object_path(release_id, draft.artifact.filename, folder=RELEASE_FOLDER),
            draft.artifact.content,
            draft.artifact.content_type,
        )
    except ObjectStorageError as exc:
        return _failed_step(step="upload", status="upload_failed", message=str(exc), committed=committed)
    committed.append("upload")

    try:
        _insert_release(session, admin, release_id=release_id, draft=draft, stored=stored)
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        orphan: Optional[str] = stored.path
        if settings.release_compensation_enabled:
            orphan = _discard_artifact(backend, stored)
        return _failed_step(
            step="create",
            status="create_failed",
            message=str(exc),
            committed=committed,
            stored=stored if orphan else None,
            orphaned_artifact=orphan,
        )
    committed.append("create")

    try:
        bound = replace_release_targets(session, release_id, draft.targeting)
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        if settings.release_compensation_enabled:
            removed = _remove_release_record(session, release_id)
            orphan = _discard_artifact(backend, stored) if removed else None
            if removed:
                committed = ["validate"]
            return _failed_step(
                step="target",
                status="targeting_failed",
                message=str(exc),
                committed=committed,
                release_id=None if removed else release_id,
                orphaned_artifact=orphan,
            )
        return _failed_step(
            step="target",
            status="targeting_failed",
            message=f"release created without targets, re-target it manually: {exc}",
            committed=committed,
            release_id=release_id,
            stored=stored,
        )
    committed.append("target")
    logger.info(
        "release_created",
        release_id=release_id,
        version=draft.version,
        release_type=draft.release_type,
        target_type=draft.targeting.mode,
        target_count=bound,
        requested_by=admin.user_id,
    )

    warnings: list[str] = []
    status = "draft"
    message = "release created as draft"
    if draft.publish_immediately:
        published = publish_release(session, admin, release_id, email_client=email_client)
        warnings.extend(published.warnings)
        if published.success:
            committed.append("publish")
            status = "published"
            message = "release created and published"
        else:
            warnings.append(f"release created but failed to publish: {published.message}")
            logger.warning("release_publish_after_create_failed", release_id=release_id, error=published.message)

    return ReleaseSagaResult(
        success=True,
        status=status,
        message=message,
        committed_steps=tuple(committed),
        release_id=release_id,
        file_url=stored.public_url,
        warnings=tuple(warnings),
    )


def _remove_release_record(session: Session, release_id: str) -> bool:
    try:
        execute_verified(
            session,
            delete(SoftwareRelease).where(SoftwareRelease.id == release_id),
            target=SoftwareRelease.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("release_compensation_failed", release_id=release_id, error=str(exc))
        return False
    return True


def get_release(session: Session, release_id: str) -> Optional[SoftwareRelease]:
    return session.scalar(select(SoftwareRelease).where(SoftwareRelease.id == release_id))


def list_releases(
    session: Session,
    *,
    status: Optional[str] = None,
    release_type: Optional[str] = None,
    product_id: Optional[str] = None,
    search: Optional[str] = None,
) -> list[SoftwareRelease]:
    statement = select(SoftwareRelease)
    if status:
        statement = statement.where(SoftwareRelease.status == status)
    if release_type:
        statement = statement.where(SoftwareRelease.release_type == release_type)
    if product_id:
        statement = statement.where(SoftwareRelease.product_id == product_id)
    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        statement = statement.where(or_(SoftwareRelease.name.ilike(pattern), SoftwareRelease.version.ilike(pattern)))
    return list(session.scalars(statement.order_by(SoftwareRelease.created_at.desc())).all())


def get_release_targets(session: Session, release_id: str) -> ReleaseTargeting:
    release = get_release(session, release_id)
    if release is None or release.target_type not in (TARGET_DISTRIBUTORS, TARGET_DEVICES):
        return ReleaseTargeting.everyone()
    if release.target_type == TARGET_DISTRIBUTORS:
        ids = session.scalars(
            select(ReleaseTargetDistributor.distributor_id).where(ReleaseTargetDistributor.release_id == release_id)
        ).all()
    else:
        ids = session.scalars(
            select(ReleaseTargetDevice.device_id).where(ReleaseTargetDevice.release_id == release_id)
        ).all()
    return ReleaseTargeting(mode=release.target_type, ids=tuple(sorted(ids)))


def _not_found(release_id: str) -> ReleaseActionResult:
    return ReleaseActionResult(success=False, release_id=release_id, status="not_found", message="release_not_found")


def _read_failed(session: Session, release_id: str, exc: SQLAlchemyError) -> ReleaseActionResult:
    session.rollback()
    logger.error("release_read_failed", release_id=release_id, error=str(exc))
    return ReleaseActionResult(
        success=False,
        release_id=release_id,
        status="failed",
        message=f"release_read_failed: {exc}",
        requires_retry=True,
    )


def publish_release(
    session: Session,
    admin: AdminContext,
    release_id: str,
    *,
    email_client: Optional[ResendClient] = None,
) -> ReleaseActionResult:
    """Move a draft to published, then notify its targets when asked to."""

    try:
        release = get_release(session, release_id)
    except SQLAlchemyError as exc:
        return _read_failed(session, release_id, exc)
    if release is None:
        return _not_found(release_id)
    if release.status != "draft":
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="invalid_state",
            message=f"only draft releases can be published (status={release.status})",
        )

    now = _now_utc()
    try:
        execute_verified(
            session,
            update(SoftwareRelease)
            .where(SoftwareRelease.id == release_id, SoftwareRelease.status == "draft")
            .values(status="published", published_at=now, updated_at=now),
            target=SoftwareRelease.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("release_publish_failed", release_id=release_id, error=str(exc))
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="failed",
            message=str(exc),
            requires_retry=True,
        )
    session.refresh(release)

    warnings: list[str] = []
    if release.notify_on_publish:
        notification = notify_release_targets(session, admin, release_id, client=email_client)
        if not notification.success or notification.errors:
            warnings.append(f"notification incomplete: {notification.message}")
            warnings.extend(notification.errors)

    logger.info("release_published", release_id=release_id, requested_by=admin.user_id)
    return ReleaseActionResult(
        success=True,
        release_id=release_id,
        status="published",
        message="release_published",
        warnings=tuple(warnings),
    )


def deprecate_release(session: Session, admin: AdminContext, release_id: str) -> ReleaseActionResult:
    try:
        release = get_release(session, release_id)
    except SQLAlchemyError as exc:
        return _read_failed(session, release_id, exc)
    if release is None:
        return _not_found(release_id)
    try:
        execute_verified(
            session,
            update(SoftwareRelease)
            .where(SoftwareRelease.id == release_id)
            .values(status="deprecated", updated_at=_now_utc()),
            target=SoftwareRelease.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("release_deprecate_failed", release_id=release_id, error=str(exc))
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="failed",
            message=str(exc),
            requires_retry=True,
        )
    logger.info("release_deprecated", release_id=release_id, requested_by=admin.user_id)
    return ReleaseActionResult(success=True, release_id=release_id, status="deprecated", message="release_deprecated")


def delete_release(
    session: Session,
    admin: AdminContext,
    release_id: str,
    *,
    storage: Optional[ObjectStorage] = None,
) -> ReleaseActionResult:
    try:
        release = get_release(session, release_id)
    except SQLAlchemyError as exc:
        return _read_failed(session, release_id, exc)
    if release is None:
        return _not_found(release_id)
    if release.status == "published":
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="invalid_state",
            message="published releases cannot be deleted, deprecate them instead",
        )
    artifact_path = release.file_path

    try:
        replace_release_targets(session, release_id, ReleaseTargeting.everyone())
        execute_verified(
            session,
            delete(SoftwareRelease).where(SoftwareRelease.id == release_id),
            target=SoftwareRelease.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("release_delete_failed", release_id=release_id, error=str(exc))
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="failed",
            message=str(exc),
            requires_retry=True,
        )

    warnings: list[str] = []
    if artifact_path:
        try:
            (storage or get_object_storage()).delete(RELEASE_BUCKET, artifact_path)
        except ObjectStorageError as exc:
            logger.warning("release_artifact_delete_failed", release_id=release_id, path=artifact_path, error=str(exc))
            warnings.append(f"artifact_not_deleted path={artifact_path}")

    logger.info("release_deleted", release_id=release_id, requested_by=admin.user_id)
    return ReleaseActionResult(
        success=True,
        release_id=release_id,
        status="deleted",
        message="release_deleted",
        warnings=tuple(warnings),
    )


def set_release_targets(
    session: Session,
    admin: AdminContext,
    release_id: str,
    targeting: ReleaseTargeting,
) -> ReleaseActionResult:
    """Re-target an existing release; replaces rows and the recorded mode together."""

    if targeting.needs_selection:
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="invalid",
            message=f"select at least one target for mode {targeting.mode}",
        )
    try:
        release = get_release(session, release_id)
    except SQLAlchemyError as exc:
        return _read_failed(session, release_id, exc)
    if release is None:
        return _not_found(release_id)

    try:
        bound = replace_release_targets(session, release_id, targeting)
        execute_verified(
            session,
            update(SoftwareRelease)
            .where(SoftwareRelease.id == release_id)
            .values(target_type=targeting.mode, updated_at=_now_utc()),
            target=SoftwareRelease.__tablename__,
            expected_rows=1,
        )
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error("release_targets_save_failed", release_id=release_id, target_type=targeting.mode, error=str(exc))
        return ReleaseActionResult(
            success=False,
            release_id=release_id,
            status="failed",
            message=str(exc),
            requires_retry=True,
        )

    logger.info(
        "release_targets_saved",
        release_id=release_id,
        target_type=targeting.mode,
        target_count=bound,
        requested_by=admin.user_id,
    )
    return ReleaseActionResult(
        success=True,
        release_id=release_id,
        status=targeting.mode,
        message=f"targets_saved count={bound}",
    )


def _version_part(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def compare_versions(left: str, right: str) -> int:
    """-1, 0 or 1 comparing dotted versions; missing or non-numeric parts count as 0."""

    left_parts = [_version_part(part) for part in left.split(".")]
    right_parts = [_version_part(part) for part in right.split(".")]
    for index in range(max(len(left_parts), len(right_parts))):
        left_value = left_parts[index] if index < len(left_parts) else 0
        right_value = right_parts[index] if index < len(right_parts) else 0
        if left_value < right_value:
            return -1
        if left_value > right_value:
            return 1
    return 0


def format_file_size(size_bytes: Optional[int]) -> str:
    if not size_bytes:
        return "Unknown"
    units = ("B", "KB", "MB", "GB")
    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"
