"""Schemas for software release endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from portal_admin.schemas.content import FileUploadPayload


class ReleaseCreateRequest(BaseModel):
    name: str = ""
    version: str = ""
    release_type: str = "firmware"
    file: Optional[FileUploadPayload] = None
    target_type: str = "all"
    distributor_ids: list[str] = Field(default_factory=list)
    device_ids: list[str] = Field(default_factory=list)
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


class ReleaseSagaResponse(BaseModel):
    success: bool
    status: str
    message: str
    failed_step: Optional[str] = None
    section: Optional[str] = None
    committed_steps: list[str] = Field(default_factory=list)
    release_id: Optional[str] = None
    file_url: Optional[str] = None
    orphaned_artifact: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class ReleaseActionResponse(BaseModel):
    success: bool
    release_id: str
    status: str
    message: str
    requires_retry: bool = False
    warnings: list[str] = Field(default_factory=list)


class ReleaseTargetsRequest(BaseModel):
    target_type: str = "all"
    distributor_ids: list[str] = Field(default_factory=list)
    device_ids: list[str] = Field(default_factory=list)


class ReleaseTargetsResponse(BaseModel):
    release_id: str
    target_type: str
    ids: list[str]


class ReleaseItem(BaseModel):
    id: str
    name: str
    version: str
    release_type: str
    status: str
    target_type: str
    product_name: Optional[str]
    file_url: str
    file_name: str
    file_size: Optional[int]
    file_size_label: str
    is_mandatory: bool
    notify_on_publish: bool
    published_at: Optional[datetime]
    created_at: datetime


class ReleaseListResponse(BaseModel):
    items: list[ReleaseItem]


class DeviceItem(BaseModel):
    id: str
    device_name: str
    serial_number: str
    customer_name: Optional[str]


class DeviceSearchResponse(BaseModel):
    items: list[DeviceItem]


class DistributorItem(BaseModel):
    id: str
    company_name: str
    territory: Optional[str]


class DistributorListResponse(BaseModel):
    items: list[DistributorItem]


class NotifyRequest(BaseModel):
    only_unnotified: bool = False


class NotificationResponse(BaseModel):
    success: bool
    release_id: str
    status: str
    message: str
    total_recipients: int
    sent_count: int
    errors: list[str] = Field(default_factory=list)
