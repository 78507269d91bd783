"""Software release API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal_admin.api.uploads import to_artifact
from portal_admin.auth.dependencies import require_admin_context, require_admin_role
from portal_admin.auth.jwt import CONTENT_EDITOR_ROLES, AdminContext
from portal_admin.integrations.email import ResendClient, get_resend_client
from portal_admin.releases.notifications import notify_release_targets
from portal_admin.releases.service import (
    SECTION_FILE,
    SECTION_TARGETING,
    ReleaseActionResult,
    ReleaseDraft,
    create_release,
    delete_release,
    deprecate_release,
    format_file_size,
    get_release_targets,
    list_releases,
    publish_release,
    set_release_targets,
)
from portal_admin.releases.targeting import build_targeting, list_targetable_distributors, search_targetable_devices
from portal_admin.schemas.releases import (
    DeviceItem,
    DeviceSearchResponse,
    DistributorItem,
    DistributorListResponse,
    NotificationResponse,
    NotifyRequest,
    ReleaseActionResponse,
    ReleaseCreateRequest,
    ReleaseItem,
    ReleaseListResponse,
    ReleaseSagaResponse,
    ReleaseTargetsRequest,
    ReleaseTargetsResponse,
)
from portal_admin.storage.db import get_session
from portal_admin.storage.objects import ObjectStorage, get_object_storage
from portal_admin.storage.rls import set_admin_context


router = APIRouter(prefix="/releases", tags=["releases"])

_ACTION_CODES = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_state": status.HTTP_409_CONFLICT,
}


def _section_error(message: str, section: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": message, "section": section},
    )


def _action_response(result: ReleaseActionResult) -> ReleaseActionResponse:
    if not result.success:
        raise HTTPException(
            status_code=_ACTION_CODES.get(result.status, status.HTTP_502_BAD_GATEWAY),
            detail=result.message,
        )
    return ReleaseActionResponse(
        success=result.success,
        release_id=result.release_id,
        status=result.status,
        message=result.message,
        requires_retry=result.requires_retry,
        warnings=list(result.warnings),
    )


@router.get("", response_model=ReleaseListResponse)
def list_release_items(
    status_filter: Optional[str] = None,
    release_type: Optional[str] = None,
    search: Optional[str] = None,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> ReleaseListResponse:
    del admin
    releases = list_releases(session, status=status_filter, release_type=release_type, search=search)
    return ReleaseListResponse(
        items=[
            ReleaseItem(
                id=release.id,
                name=release.name,
                version=release.version,
                release_type=release.release_type,
                status=release.status,
                target_type=release.target_type,
                product_name=release.product_name,
                file_url=release.file_url,
                file_name=release.file_name,
                file_size=release.file_size,
                file_size_label=format_file_size(release.file_size),
                is_mandatory=release.is_mandatory,
                notify_on_publish=release.notify_on_publish,
                published_at=release.published_at,
                created_at=release.created_at,
            )
            for release in releases
        ]
    )


@router.post("", response_model=ReleaseSagaResponse, status_code=status.HTTP_201_CREATED)
def create_release_endpoint(
    payload: ReleaseCreateRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
    email_client: ResendClient = Depends(get_resend_client),
) -> ReleaseSagaResponse:
    set_admin_context(session, admin.user_id)
    try:
        targeting = build_targeting(
            payload.target_type,
            distributor_ids=payload.distributor_ids,
            device_ids=payload.device_ids,
        )
    except ValueError as exc:
        raise _section_error(str(exc), SECTION_TARGETING) from exc
    try:
        artifact = to_artifact(payload.file) if payload.file else None
    except HTTPException as exc:
        raise _section_error(str(exc.detail), SECTION_FILE) from exc

    draft = ReleaseDraft(
        name=payload.name,
        version=payload.version,
        release_type=payload.release_type,
        artifact=artifact,
        targeting=targeting,
        product_id=payload.product_id,
        product_name=payload.product_name,
        description=payload.description,
        release_notes=payload.release_notes,
        changelog=payload.changelog,
        min_previous_version=payload.min_previous_version,
        is_mandatory=payload.is_mandatory,
        notify_on_publish=payload.notify_on_publish,
        release_date=payload.release_date,
        publish_immediately=payload.publish_immediately,
    )
    result = create_release(session, admin, draft, storage=storage, email_client=email_client)
    if result.status == "invalid":
        raise _section_error(result.message, result.section or "basic")

    response = ReleaseSagaResponse(
        success=result.success,
        status=result.status,
        message=result.message,
        failed_step=result.failed_step,
        section=result.section,
        committed_steps=list(result.committed_steps),
        release_id=result.release_id,
        file_url=result.file_url,
        orphaned_artifact=result.orphaned_artifact,
        warnings=list(result.warnings),
    )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=response.model_dump())
    return response


@router.get("/devices", response_model=DeviceSearchResponse)
def search_devices(
    query: Optional[str] = None,
    limit: int = 100,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> DeviceSearchResponse:
    del admin
    devices = search_targetable_devices(session, query=query, limit=limit)
    return DeviceSearchResponse(
        items=[
            DeviceItem(
                id=device.id,
                device_name=device.device_name,
                serial_number=device.serial_number,
                customer_name=device.customer_name,
            )
            for device in devices
        ]
    )


@router.get("/distributors", response_model=DistributorListResponse)
def list_distributors(
    query: Optional[str] = None,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> DistributorListResponse:
    del admin
    return DistributorListResponse(
        items=[
            DistributorItem(id=item.id, company_name=item.company_name, territory=item.territory)
            for item in list_targetable_distributors(session, query=query)
        ]
    )


@router.post("/{release_id}/publish", response_model=ReleaseActionResponse)
def publish_release_endpoint(
    release_id: str,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    email_client: ResendClient = Depends(get_resend_client),
) -> ReleaseActionResponse:
    set_admin_context(session, admin.user_id)
    return _action_response(publish_release(session, admin, release_id, email_client=email_client))


@router.post("/{release_id}/deprecate", response_model=ReleaseActionResponse)
def deprecate_release_endpoint(
    release_id: str,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> ReleaseActionResponse:
    set_admin_context(session, admin.user_id)
    return _action_response(deprecate_release(session, admin, release_id))


@router.delete("/{release_id}", response_model=ReleaseActionResponse)
def delete_release_endpoint(
    release_id: str,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> ReleaseActionResponse:
    set_admin_context(session, admin.user_id)
    return _action_response(delete_release(session, admin, release_id, storage=storage))


@router.get("/{release_id}/targets", response_model=ReleaseTargetsResponse)
def read_release_targets(
    release_id: str,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> ReleaseTargetsResponse:
    del admin
    targeting = get_release_targets(session, release_id)
    return ReleaseTargetsResponse(release_id=release_id, target_type=targeting.mode, ids=list(targeting.ids))


@router.put("/{release_id}/targets", response_model=ReleaseActionResponse)
def replace_release_targets_endpoint(
    release_id: str,
    payload: ReleaseTargetsRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> ReleaseActionResponse:
    set_admin_context(session, admin.user_id)
    try:
        targeting = build_targeting(
            payload.target_type,
            distributor_ids=payload.distributor_ids,
            device_ids=payload.device_ids,
        )
    except ValueError as exc:
        raise _section_error(str(exc), SECTION_TARGETING) from exc
    result = set_release_targets(session, admin, release_id, targeting)
    if result.status == "invalid":
        raise _section_error(result.message, SECTION_TARGETING)
    return _action_response(result)


@router.post("/{release_id}/notify", response_model=NotificationResponse)
def notify_release_endpoint(
    release_id: str,
    payload: NotifyRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
    email_client: ResendClient = Depends(get_resend_client),
) -> NotificationResponse:
    set_admin_context(session, admin.user_id)
    result = notify_release_targets(
        session,
        admin,
        release_id,
        only_unnotified=payload.only_unnotified,
        client=email_client,
    )
    if result.status == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    return NotificationResponse(
        success=result.success,
        release_id=result.release_id,
        status=result.status,
        message=result.message,
        total_recipients=result.total_recipients,
        sent_count=result.sent_count,
        errors=list(result.errors),
    )
