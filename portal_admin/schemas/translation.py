"""Schemas for translation endpoints."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TranslateRequest(BaseModel):
    content_type: str = Field(min_length=1, max_length=40)
    content_id: str = Field(min_length=1, max_length=36)
    fields: dict[str, Any]
    target_languages: list[str] = Field(default_factory=list)
    source_language: Optional[str] = Field(default=None, max_length=8)


class TranslateResponse(BaseModel):
    success: bool
    status: str
    message: str
    languages: dict[str, str]
    success_count: int
    error_count: int
    error_kind: Optional[str] = None
    failed_languages: list[str] = Field(default_factory=list)


class StoredTranslationsResponse(BaseModel):
    content_type: str
    content_id: str
    language_code: str
    translations: dict[str, str]


class TranslationFunctionRequest(BaseModel):
    """Wire format of the translate-content function (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field(alias="contentType", min_length=1, max_length=40)
    content_id: str = Field(alias="contentId", min_length=1, max_length=36)
    source_language: str = Field(default="en", alias="sourceLanguage", max_length=8)
    target_languages: list[str] = Field(default_factory=list, alias="targetLanguages")
    fields: dict[str, Any] = Field(default_factory=dict)
