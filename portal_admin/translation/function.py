"""Server side of the translate-content endpoint.

Loops target languages over non-empty string fields, translates each pair
with DeepL and upserts it into ``content_translations``. Every pair is
reported separately so callers can reconcile per language.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.core.config import get_settings
from portal_admin.core.logger import get_logger
from portal_admin.storage.models import ContentTranslation
from portal_admin.storage.verified import VerifiedWriteError, execute_verified, insert_verified
from portal_admin.translation.service import translatable_fields


logger = get_logger("portal_admin.translation.function")

DEEPL_LANGUAGE_CODES = {
    "en": "EN",
    "de": "DE",
    "fr": "FR",
    "es": "ES",
    "it": "IT",
}
PROVIDER_NOT_CONFIGURED = "translation provider not configured"


class DeepLError(RuntimeError):
    """Raised when DeepL rejects or fails a translation request."""


class DeepLClient:
    def __init__(
        self,
        *,
        api_key: str,
        api_url: str = "https://api-free.deepl.com/v2/translate",
        timeout_seconds: int = 30,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._api_url = api_url.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def translate(self, text: str, *, target_language: str, source_language: str = "en") -> str:
        target = DEEPL_LANGUAGE_CODES.get(target_language.lower())
        if target is None:
            raise DeepLError(f"unsupported_target_language language={target_language}")
        payload = {
            "text": [text],
            "target_lang": target,
            "source_lang": DEEPL_LANGUAGE_CODES.get(source_language.lower(), "EN"),
            "formality": "default",
            "preserve_formatting": True,
        }
        headers = {
            "Authorization": f"DeepL-Auth-Key {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                response = self._client.post(self._api_url, headers=headers, json=payload)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(self._api_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise DeepLError(f"deepl_transport_error detail={exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise DeepLError(f"deepl_request_failed status={response.status_code} detail={detail}")
        try:
            body = response.json()
            return str(body["translations"][0]["text"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise DeepLError("deepl_invalid_payload") from exc


@lru_cache(maxsize=1)
def get_deepl_client() -> DeepLClient:
    settings = get_settings()
    return DeepLClient(
        api_key=settings.deepl_api_key,
        api_url=settings.deepl_api_url,
        timeout_seconds=settings.deepl_timeout_seconds,
    )


@dataclass(frozen=True)
class FieldTranslationResult:
    field: str
    language: str
    success: bool
    translation: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TranslationRunResult:
    success: bool
    message: str
    results: tuple[FieldTranslationResult, ...] = ()
    configured: bool = True


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def upsert_translation(
    session: Session,
    *,
    content_type: str,
    content_id: str,
    field_name: str,
    language_code: str,
    translated_text: str,
) -> None:
    """Insert or refresh one stored translation and commit it."""

    existing_id = session.scalar(
        select(ContentTranslation.id).where(
            ContentTranslation.content_type == content_type,
            ContentTranslation.content_id == content_id,
            ContentTranslation.field_name == field_name,
            ContentTranslation.language_code == language_code,
        )
    )
    now = _now_utc()
    if existing_id is None:
        insert_verified(
            session,
            ContentTranslation,
            [
                {
                    "content_type": content_type,
                    "content_id": content_id,
                    "field_name": field_name,
                    "language_code": language_code,
                    "translated_text": translated_text,
                    "created_at": now,
                    "updated_at": now,
                }
            ],
        )
    else:
        execute_verified(
            session,
            update(ContentTranslation)
            .where(ContentTranslation.id == existing_id)
            .values(translated_text=translated_text, updated_at=now),
            target=ContentTranslation.__tablename__,
            expected_rows=1,
        )
    session.commit()


def run_translation(
    session: Session,
    *,
    content_type: str,
    content_id: str,
    source_language: str,
    target_languages: Sequence[str],
    fields: Mapping[str, Any],
    translator: Optional[DeepLClient] = None,
) -> TranslationRunResult:
    deepl = translator or get_deepl_client()
    if not deepl.configured:
        logger.error("translation_provider_not_configured", content_type=content_type, content_id=content_id)
        return TranslationRunResult(success=False, message=PROVIDER_NOT_CONFIGURED, configured=False)

    source_fields = translatable_fields(fields)
    results: List[FieldTranslationResult] = []
    for language in target_languages:
        code = str(language).strip().lower()
        for field_name, text in source_fields.items():
            try:
                translated = deepl.translate(text, target_language=code, source_language=source_language)
                upsert_translation(
                    session,
                    content_type=content_type,
                    content_id=content_id,
                    field_name=field_name,
                    language_code=code,
                    translated_text=translated,
                )
            except (DeepLError, VerifiedWriteError, SQLAlchemyError) as exc:
                session.rollback()
                logger.warning(
                    "field_translation_failed",
                    content_type=content_type,
                    content_id=content_id,
                    field=field_name,
                    language=code,
                    error=str(exc),
                )
                results.append(FieldTranslationResult(field=field_name, language=code, success=False, error=str(exc)))
                continue
            results.append(FieldTranslationResult(field=field_name, language=code, success=True, translation=translated))

    all_success = all(result.success for result in results)
    logger.info(
        "translation_run_finished",
        content_type=content_type,
        content_id=content_id,
        languages=len(target_languages),
        fields=len(source_fields),
        failed=sum(1 for result in results if not result.success),
    )
    return TranslationRunResult(
        success=all_success,
        message="All translations completed successfully" if all_success else "Some translations failed",
        results=tuple(results),
    )


def serialize_run_result(result: TranslationRunResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": result.success,
        "message": result.message,
        "results": [],
    }
    for item in result.results:
        entry: Dict[str, Any] = {"field": item.field, "language": item.language, "success": item.success}
        if item.success:
            entry["translation"] = item.translation
        else:
            entry["error"] = item.error
        payload["results"].append(entry)
    if not result.configured:
        payload["error"] = result.message
    return payload
