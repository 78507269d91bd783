"""Release rollout targeting, kept apart from content sharing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from portal_admin.sharing.service import normalize_distributor_ids
from portal_admin.storage.models import Customer, Device, Distributor


TARGET_ALL = "all"
TARGET_DISTRIBUTORS = "distributors"
TARGET_DEVICES = "devices"
TARGET_MODES = (TARGET_ALL, TARGET_DISTRIBUTORS, TARGET_DEVICES)

DEVICE_SEARCH_LIMIT = 100


@dataclass(frozen=True)
class ReleaseTargeting:
    """Exactly one of: everyone, a distributor selection, a device selection."""

    mode: str
    ids: tuple[str, ...] = ()

    @classmethod
    def everyone(cls) -> "ReleaseTargeting":
        return cls(mode=TARGET_ALL)

    @classmethod
    def to_distributors(cls, distributor_ids: Iterable[Optional[str]]) -> "ReleaseTargeting":
        return cls(mode=TARGET_DISTRIBUTORS, ids=tuple(normalize_distributor_ids(distributor_ids)))

    @classmethod
    def to_devices(cls, device_ids: Iterable[Optional[str]]) -> "ReleaseTargeting":
        return cls(mode=TARGET_DEVICES, ids=tuple(normalize_distributor_ids(device_ids)))

    @property
    def distributor_ids(self) -> tuple[str, ...]:
        return self.ids if self.mode == TARGET_DISTRIBUTORS else ()

    @property
    def device_ids(self) -> tuple[str, ...]:
        return self.ids if self.mode == TARGET_DEVICES else ()

    @property
    def needs_selection(self) -> bool:
        return self.mode != TARGET_ALL and not self.ids


def build_targeting(
    mode: str,
    *,
    distributor_ids: Optional[Iterable[Optional[str]]] = None,
    device_ids: Optional[Iterable[Optional[str]]] = None,
) -> ReleaseTargeting:
    normalized = (mode or TARGET_ALL).strip().lower()
    if normalized == TARGET_ALL:
        return ReleaseTargeting.everyone()
    if normalized == TARGET_DISTRIBUTORS:
        return ReleaseTargeting.to_distributors(distributor_ids or ())
    if normalized == TARGET_DEVICES:
        return ReleaseTargeting.to_devices(device_ids or ())
    raise ValueError(f"unknown_target_mode mode={mode}")


@dataclass(frozen=True)
class TargetableDevice:
    id: str
    device_name: str
    serial_number: str
    customer_name: Optional[str]


@dataclass(frozen=True)
class TargetableDistributor:
    id: str
    company_name: str
    territory: Optional[str]


def search_targetable_devices(
    session: Session,
    *,
    query: Optional[str] = None,
    limit: int = DEVICE_SEARCH_LIMIT,
) -> list[TargetableDevice]:
    """Active devices with their owner's name, matched on name, serial or customer."""

    statement = (
        select(Device.id, Device.device_name, Device.serial_number, Customer.company_name)
        .outerjoin(Customer, Customer.id == Device.customer_id)
        .where(Device.status == "active")
    )
    term = (query or "").strip()
    if term:
        pattern = f"%{term}%"
        statement = statement.where(
            or_(
                Device.device_name.ilike(pattern),
                Device.serial_number.ilike(pattern),
                Customer.company_name.ilike(pattern),
            )
        )
    bounded = max(1, min(limit, DEVICE_SEARCH_LIMIT))
    rows = session.execute(statement.order_by(Device.device_name).limit(bounded)).all()
    return [
        TargetableDevice(id=row[0], device_name=row[1], serial_number=row[2], customer_name=row[3])
        for row in rows
    ]


def list_targetable_distributors(session: Session, *, query: Optional[str] = None) -> list[TargetableDistributor]:
    statement = select(Distributor).where(Distributor.status == "active")
    term = (query or "").strip()
    if term:
        statement = statement.where(Distributor.company_name.ilike(f"%{term}%"))
    distributors = session.scalars(statement.order_by(Distributor.company_name)).all()
    return [
        TargetableDistributor(id=item.id, company_name=item.company_name, territory=item.territory)
        for item in distributors
    ]
