"""Schemas for content items, sharing and batch ingestion endpoints."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class FileUploadPayload(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    content_base64: str = Field(min_length=1)
    content_type: Optional[str] = Field(default=None, max_length=120)
    title: Optional[str] = Field(default=None, max_length=255)


class ContentCreateRequest(BaseModel):
    fields: dict[str, Any]
    file: Optional[FileUploadPayload] = None
    distributor_ids: Optional[list[str]] = None


class ContentWriteResponse(BaseModel):
    success: bool
    kind: str
    status: str
    message: str
    content_id: Optional[str] = None
    file_url: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


class ContentItemResponse(BaseModel):
    kind: str
    id: str
    data: dict[str, Any]


class ContentListResponse(BaseModel):
    kind: str
    items: list[ContentItemResponse]


class SharingUpdateRequest(BaseModel):
    distributor_ids: list[str] = Field(default_factory=list)


class SharingResponse(BaseModel):
    kind: str
    content_id: str
    distributor_ids: list[str]
    is_all: bool
    label: str
    count: int


class SharingUpdateResponse(BaseModel):
    success: bool
    kind: str
    content_id: str
    status: str
    message: str
    distributor_ids: list[str]
    requires_retry: bool = False


class BatchIngestRequest(BaseModel):
    files: list[FileUploadPayload] = Field(min_length=1)
    shared_fields: dict[str, Any]
    distributor_ids: Optional[list[str]] = None


class BatchItemResponse(BaseModel):
    index: int
    filename: str
    title: str
    success: bool
    stage: str
    message: str
    content_id: Optional[str] = None
    file_url: Optional[str] = None


class BatchIngestResponse(BaseModel):
    success: bool
    kind: str
    status: str
    message: str
    total: int
    success_count: int
    error_count: int
    progress: list[list[int]] = Field(default_factory=list)
    items: list[BatchItemResponse] = Field(default_factory=list)
