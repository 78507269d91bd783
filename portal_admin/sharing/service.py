"""Distributor sharing resolver for content items.

Visibility uses a sparse allow-list: an item with no rows in its
``{kind}_distributors`` table is visible to every distributor, an item with
rows is visible only to the listed distributors. Saving a list always
replaces the whole list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.kinds import ContentKind, ContentKindSpec, get_kind_spec
from portal_admin.core.logger import get_logger
from portal_admin.storage.models import Distributor
from portal_admin.storage.verified import VerifiedWriteError, delete_verified, insert_verified


logger = get_logger("portal_admin.sharing")

NO_SELECTION = ""


class SharingError(RuntimeError):
    """Raised when the allow-list of an item cannot be read."""


@dataclass(frozen=True)
class SharingResult:
    success: bool
    kind: str
    content_id: str
    status: str
    message: str
    distributor_ids: tuple[str, ...] = ()
    requires_retry: bool = False


@dataclass(frozen=True)
class SharingSummary:
    label: str
    count: int
    is_all: bool


def normalize_distributor_ids(distributor_ids: Optional[Iterable[Optional[str]]]) -> list[str]:
    """Drop the "no selection" placeholder and duplicates, keeping order."""

    normalized: list[str] = []
    for value in distributor_ids or ():
        if value is None:
            continue
        cleaned = str(value).strip()
        if cleaned == NO_SELECTION or cleaned in normalized:
            continue
        normalized.append(cleaned)
    return normalized


def _content_exists(session: Session, spec: ContentKindSpec, content_id: str) -> bool:
    return session.scalar(select(spec.model.id).where(spec.model.id == content_id)) is not None


def unknown_distributors(session: Session, distributor_ids: Sequence[str]) -> list[str]:
    """Ids from ``distributor_ids`` with no distributor row, in input order."""

    if not distributor_ids:
        return []
    known = set(session.scalars(select(Distributor.id).where(Distributor.id.in_(distributor_ids))).all())
    return [distributor_id for distributor_id in distributor_ids if distributor_id not in known]


def get_access_list(session: Session, admin: AdminContext, kind: ContentKind | str, content_id: str) -> list[str]:
    """Return the allow-list; an empty list means visible to all distributors."""

    spec = get_kind_spec(kind)
    try:
        rows = session.scalars(
            select(spec.sharing_model.distributor_id).where(spec.sharing_id_attr() == content_id)
        ).all()
    except SQLAlchemyError as exc:
        logger.error(
            "sharing_read_failed",
            kind=spec.kind.value,
            content_id=content_id,
            requested_by=admin.user_id,
            error=str(exc),
        )
        raise SharingError(f"sharing_read_failed kind={spec.kind.value} content_id={content_id}") from exc
    return sorted(rows)


def replace_access_rows(session: Session, spec: ContentKindSpec, content_id: str, distributor_ids: Sequence[str]) -> int:
    """Delete every row of the item, then insert one verified row per id.

    Does not commit; callers own the transaction.
    """

    delete_verified(session, spec.sharing_model, spec.sharing_id_attr() == content_id)
    if not distributor_ids:
        return 0
    return insert_verified(
        session,
        spec.sharing_model,
        [{spec.sharing_column: content_id, "distributor_id": distributor_id} for distributor_id in distributor_ids],
    )


def set_access_list(
    session: Session,
    admin: AdminContext,
    kind: ContentKind | str,
    content_id: str,
    distributor_ids: Optional[Iterable[Optional[str]]],
) -> SharingResult:
    spec = get_kind_spec(kind)
    normalized = normalize_distributor_ids(distributor_ids)

    try:
        exists = _content_exists(session, spec, content_id)
        unknown = unknown_distributors(session, normalized) if exists else []
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "sharing_read_failed",
            kind=spec.kind.value,
            content_id=content_id,
            requested_by=admin.user_id,
            error=str(exc),
        )
        return SharingResult(
            success=False,
            kind=spec.kind.value,
            content_id=content_id,
            status="failed",
            message=f"sharing_not_saved: {exc}",
            distributor_ids=tuple(normalized),
            requires_retry=True,
        )

    if not exists:
        return SharingResult(
            success=False,
            kind=spec.kind.value,
            content_id=content_id,
            status="not_found",
            message="content_not_found",
        )
    if unknown:
        return SharingResult(
            success=False,
            kind=spec.kind.value,
            content_id=content_id,
            status="invalid",
            message=f"unknown_distributors ids={','.join(unknown)}",
        )

    try:
        inserted = replace_access_rows(session, spec, content_id, normalized)
        session.commit()
    except (VerifiedWriteError, SQLAlchemyError) as exc:
        session.rollback()
        logger.error(
            "sharing_save_failed",
            kind=spec.kind.value,
            content_id=content_id,
            table=spec.sharing_table,
            requested_distributor_count=len(normalized),
            requested_by=admin.user_id,
            error=str(exc),
        )
        return SharingResult(
            success=False,
            kind=spec.kind.value,
            content_id=content_id,
            status="failed",
            message=f"sharing_not_saved: {exc}",
            distributor_ids=tuple(normalized),
            requires_retry=True,
        )

    status = "restricted" if normalized else "public"
    logger.info(
        "sharing_saved",
        kind=spec.kind.value,
        content_id=content_id,
        status=status,
        distributor_count=inserted,
        requested_by=admin.user_id,
    )
    return SharingResult(
        success=True,
        kind=spec.kind.value,
        content_id=content_id,
        status=status,
        message="shared_with_all" if not normalized else f"shared_with_{inserted}_distributors",
        distributor_ids=tuple(normalized),
    )


def is_shared_with_all(session: Session, admin: AdminContext, kind: ContentKind | str, content_id: str) -> bool:
    return not get_access_list(session, admin, kind, content_id)


def sharing_summary(session: Session, admin: AdminContext, kind: ContentKind | str, content_id: str) -> SharingSummary:
    distributor_ids = get_access_list(session, admin, kind, content_id)
    if not distributor_ids:
        return SharingSummary(label="All", count=0, is_all=True)
    count = len(distributor_ids)
    suffix = "" if count == 1 else "s"
    return SharingSummary(label=f"{count} Distributor{suffix}", count=count, is_all=False)


def _accessible_clause(spec: ContentKindSpec, distributor_id: str) -> Any:
    id_attr = spec.sharing_id_attr()
    any_rows = select(spec.sharing_model.id).where(id_attr == spec.model.id).exists()
    own_rows = (
        select(spec.sharing_model.id)
        .where(id_attr == spec.model.id, spec.sharing_model.distributor_id == distributor_id)
        .exists()
    )
    return or_(~any_rows, own_rows)


def is_visible_to(session: Session, kind: ContentKind | str, content_id: str, distributor_id: str) -> bool:
    spec = get_kind_spec(kind)
    statement = select(spec.model.id).where(
        spec.model.id == content_id,
        _accessible_clause(spec, distributor_id),
    )
    return session.scalar(statement) is not None


def list_accessible_content(
    session: Session,
    kind: ContentKind | str,
    distributor_id: str,
    *,
    status: Optional[str] = None,
) -> list[Any]:
    """Items a distributor may see: public ones plus those listing it."""

    spec = get_kind_spec(kind)
    statement = select(spec.model).where(_accessible_clause(spec, distributor_id))
    if status:
        statement = statement.where(spec.model.status == status)
    statement = statement.order_by(spec.model.created_at.desc())
    return list(session.scalars(statement).all())
