"""E-mail notification of release targets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.core.config import get_settings
from portal_admin.core.logger import get_logger
from portal_admin.integrations.email import EmailClientError, EmailMessage, ResendClient, get_resend_client
from portal_admin.releases.targeting import TARGET_ALL, TARGET_DEVICES, TARGET_DISTRIBUTORS
from portal_admin.storage.models import (
    Customer,
    Device,
    Distributor,
    ReleaseTargetDevice,
    ReleaseTargetDistributor,
    SoftwareRelease,
    UserProfile,
)
from portal_admin.storage.verified import VerifiedWriteError, execute_verified


logger = get_logger("portal_admin.releases.notifications")


@dataclass
class Recipient:
    email: str
    name: str
    distributor_id: str
    device_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    release_id: str
    status: str
    message: str
    total_recipients: int = 0
    sent_count: int = 0
    errors: tuple[str, ...] = ()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _distributor_recipients(session: Session, distributor_ids: List[str]) -> Dict[str, List[Recipient]]:
    if not distributor_ids:
        return {}
    rows = session.execute(
        select(UserProfile.email, UserProfile.full_name, Distributor.id, Distributor.company_name)
        .join(Distributor, Distributor.id == UserProfile.distributor_id)
        .where(UserProfile.distributor_id.in_(distributor_ids))
        .order_by(UserProfile.email)
    ).all()
    grouped: Dict[str, List[Recipient]] = {}
    for email, full_name, distributor_id, company_name in rows:
        if not email:
            continue
        grouped.setdefault(distributor_id, []).append(
            Recipient(email=email, name=full_name or company_name, distributor_id=distributor_id)
        )
    return grouped


def resolve_recipients(session: Session, release: SoftwareRelease, *, only_unnotified: bool = False) -> List[Recipient]:
    """Users of the distributors a release reaches, one entry per user."""

    if release.target_type == TARGET_DISTRIBUTORS:
        statement = select(ReleaseTargetDistributor.distributor_id).where(
            ReleaseTargetDistributor.release_id == release.id
        )
        if only_unnotified:
            statement = statement.where(ReleaseTargetDistributor.notified_at.is_(None))
        distributor_ids = list(session.scalars(statement).all())
        grouped = _distributor_recipients(session, distributor_ids)
        return [recipient for distributor_id in distributor_ids for recipient in grouped.get(distributor_id, [])]

    if release.target_type == TARGET_DEVICES:
        statement = (
            select(ReleaseTargetDevice.device_id, Customer.distributor_id)
            .join(Device, Device.id == ReleaseTargetDevice.device_id)
            .join(Customer, Customer.id == Device.customer_id)
            .where(ReleaseTargetDevice.release_id == release.id, Customer.distributor_id.is_not(None))
        )
        if only_unnotified:
            statement = statement.where(ReleaseTargetDevice.notified_at.is_(None))
        devices_by_distributor: Dict[str, List[str]] = {}
        for device_id, distributor_id in session.execute(statement).all():
            devices_by_distributor.setdefault(distributor_id, []).append(device_id)
        grouped = _distributor_recipients(session, list(devices_by_distributor))
        recipients = []
        for distributor_id, device_ids in devices_by_distributor.items():
            for recipient in grouped.get(distributor_id, []):
                recipient.device_ids = list(device_ids)
                recipients.append(recipient)
        return recipients

    if release.target_type == TARGET_ALL and not only_unnotified:
        active_ids = list(session.scalars(select(Distributor.id).where(Distributor.status == "active")).all())
        grouped = _distributor_recipients(session, active_ids)
        return [recipient for distributor_id in active_ids for recipient in grouped.get(distributor_id, [])]

    return []


def _mark_notified(session: Session, release: SoftwareRelease, recipient: Recipient) -> None:
    now = _now_utc()
    if release.target_type == TARGET_DISTRIBUTORS:
        execute_verified(
            session,
            update(ReleaseTargetDistributor)
            .where(
                ReleaseTargetDistributor.release_id == release.id,
                ReleaseTargetDistributor.distributor_id == recipient.distributor_id,
            )
            .values(notified_at=now),
            target=ReleaseTargetDistributor.__tablename__,
            expected_rows=1,
        )
    elif release.target_type == TARGET_DEVICES and recipient.device_ids:
        execute_verified(
            session,
            update(ReleaseTargetDevice)
            .where(
                ReleaseTargetDevice.release_id == release.id,
                ReleaseTargetDevice.device_id.in_(recipient.device_ids),
            )
            .values(notified_at=now),
            target=ReleaseTargetDevice.__tablename__,
            expected_rows=len(recipient.device_ids),
        )


def _render_message(release: SoftwareRelease, recipient: Recipient) -> tuple[str, str]:
    settings = get_settings()
    subject = f"New {release.release_type} Release: {release.name} v{release.version}"
    product_info = f" for {release.product_name}" if release.product_name else ""
    lines = [
        f"Hello {recipient.name},",
        "",
        f"A new {release.release_type} release is now available{product_info}:",
        f"{release.name} (version {release.version})",
    ]
    if release.release_notes:
        lines.extend(["", "Release notes:", release.release_notes])
    portal_url = settings.portal_public_url.strip().rstrip("/")
    if portal_url:
        lines.extend(["", f"View release: {portal_url}/software-releases"])
    return subject, "\n".join(lines)


def notify_release_targets(
    session: Session,
    admin: AdminContext,
    release_id: str,
    *,
    only_unnotified: bool = False,
    client: Optional[ResendClient] = None,
) -> NotificationResult:
    try:
        release = session.scalar(select(SoftwareRelease).where(SoftwareRelease.id == release_id))
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("release_read_failed", release_id=release_id, error=str(exc))
        return NotificationResult(success=False, release_id=release_id, status="failed", message=str(exc))
    if release is None:
        return NotificationResult(success=False, release_id=release_id, status="not_found", message="release_not_found")

    try:
        recipients = resolve_recipients(session, release, only_unnotified=only_unnotified)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("release_recipients_failed", release_id=release_id, error=str(exc))
        return NotificationResult(success=False, release_id=release_id, status="failed", message=str(exc))

    if not recipients:
        return NotificationResult(
            success=True,
            release_id=release_id,
            status="no_recipients",
            message="no_new_recipients",
        )

    email_client = client or get_resend_client()
    from_address = get_settings().email_from_address
    sent_count = 0
    errors: list[str] = []
    for recipient in recipients:
        if email_client.configured:
            subject, text = _render_message(release, recipient)
            try:
                email_client.send(
                    EmailMessage(
                        from_address=from_address,
                        to=recipient.email,
                        subject=subject,
                        text=text,
                        idempotency_key=f"release-{release.id}-{recipient.distributor_id}-{recipient.email}",
                        tags={"release_id": release.id},
                    )
                )
            except EmailClientError as exc:
                errors.append(f"send_failed to={recipient.email} detail={exc}")
                continue
        try:
            _mark_notified(session, release, recipient)
            session.commit()
        except (VerifiedWriteError, SQLAlchemyError) as exc:
            session.rollback()
            errors.append(f"notified_at_not_saved to={recipient.email} detail={exc}")
        sent_count += 1

    if not email_client.configured:
        logger.info("release_notification_tracking_only", release_id=release_id, recipients=len(recipients))
        status = "tracked_only"
    elif errors and sent_count == 0:
        status = "failed"
    elif errors:
        status = "partial"
    else:
        status = "sent"

    logger.info(
        "release_notification_finished",
        release_id=release_id,
        status=status,
        sent_count=sent_count,
        error_count=len(errors),
        requested_by=admin.user_id,
    )
    return NotificationResult(
        success=status != "failed",
        release_id=release_id,
        status=status,
        message=f"notified {sent_count} of {len(recipients)} recipients",
        total_recipients=len(recipients),
        sent_count=sent_count,
        errors=tuple(errors),
    )
