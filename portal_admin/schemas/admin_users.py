"""Schemas for the admin user creation endpoint."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AdminUserCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    password: str = ""
    full_name: str = Field(default="", alias="fullName")
    phone: Optional[str] = None
    role: str = ""


class AdminUserData(BaseModel):
    id: str
    email: str
    full_name: str
    role: str


class AdminUserCreateResponse(BaseModel):
    success: bool
    data: AdminUserData
    warnings: list[str] = Field(default_factory=list)
