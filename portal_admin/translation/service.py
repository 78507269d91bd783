"""Translation fan-out coordination and stored translation lookup."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_admin.auth.jwt import AdminContext
from portal_admin.core.config import get_settings
from portal_admin.core.logger import get_logger
from portal_admin.storage.models import ContentTranslation
from portal_admin.translation.client import (
    NOT_CONFIGURED_MARKER,
    TranslationClientError,
    TranslationFunctionClient,
    TranslationNotConfiguredError,
    TranslationOutcome,
    get_translation_client,
)


logger = get_logger("portal_admin.translation")

STATUS_PENDING = "pending"
STATUS_TRANSLATING = "translating"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

ERROR_CONFIGURATION = "configuration"
ERROR_API = "api"
ERROR_VALIDATION = "validation"

StatusCallback = Callable[[Dict[str, str]], None]


@dataclass(frozen=True)
class TranslationFanoutResult:
    success: bool
    status: str
    message: str
    languages: Dict[str, str]
    success_count: int = 0
    error_count: int = 0
    error_kind: Optional[str] = None
    outcomes: tuple[TranslationOutcome, ...] = ()

    @property
    def failed_languages(self) -> list[str]:
        return [language for language, state in self.languages.items() if state == STATUS_ERROR]


def translatable_fields(fields: Mapping[str, Any]) -> Dict[str, str]:
    """Keep only non-blank string values."""

    return {
        name: value
        for name, value in fields.items()
        if isinstance(value, str) and value.strip()
    }


def normalize_languages(languages: Iterable[str], *, source_language: str) -> list[str]:
    normalized: list[str] = []
    for language in languages:
        code = str(language).strip().lower()
        if not code or code == source_language or code in normalized:
            continue
        normalized.append(code)
    return normalized


def reconcile_language_status(languages: Iterable[str], outcomes: Iterable[TranslationOutcome]) -> Dict[str, str]:
    """A language succeeds only when the response reports it and none of its fields failed."""

    by_language: Dict[str, list[bool]] = {}
    for outcome in outcomes:
        by_language.setdefault(outcome.language, []).append(outcome.success)
    status: Dict[str, str] = {}
    for language in languages:
        reported = by_language.get(language)
        status[language] = STATUS_SUCCESS if reported and all(reported) else STATUS_ERROR
    return status


def _failed(
    languages: list[str],
    *,
    status: str,
    message: str,
    error_kind: str,
) -> TranslationFanoutResult:
    return TranslationFanoutResult(
        success=False,
        status=status,
        message=message,
        languages={language: STATUS_ERROR for language in languages},
        success_count=0,
        error_count=len(languages),
        error_kind=error_kind,
    )


def translate_content(
    admin: AdminContext,
    *,
    content_type: str,
    content_id: str,
    fields: Mapping[str, Any],
    target_languages: Iterable[str],
    source_language: Optional[str] = None,
    client: Optional[TranslationFunctionClient] = None,
    on_status: Optional[StatusCallback] = None,
) -> TranslationFanoutResult:
    """Request every field in every language with one call, then reconcile.

    ``on_status`` sees the status map twice: all languages ``translating``
    before the call and the reconciled map after it.
    """

    settings = get_settings()
    source = (source_language or settings.translation_source_language).strip().lower()
    languages = normalize_languages(target_languages, source_language=source)
    if not languages:
        return TranslationFanoutResult(
            success=False,
            status="invalid",
            message="select at least one language",
            languages={},
            error_kind=ERROR_VALIDATION,
        )
    unsupported = [language for language in languages if language not in settings.supported_languages]
    if unsupported:
        return _failed(
            languages,
            status="invalid",
            message=f"unsupported languages: {', '.join(unsupported)}",
            error_kind=ERROR_VALIDATION,
        )
    source_fields = translatable_fields(fields)
    if not source_fields:
        return _failed(languages, status="invalid", message="nothing to translate", error_kind=ERROR_VALIDATION)

    if on_status is not None:
        on_status({language: STATUS_TRANSLATING for language in languages})

    translator = client or get_translation_client()
    try:
        response = translator.translate(
            access_token=admin.access_token,
            content_type=content_type,
            content_id=content_id,
            source_language=source,
            target_languages=languages,
            fields=source_fields,
        )
    except TranslationNotConfiguredError as exc:
        logger.error("translation_not_configured", content_type=content_type, content_id=content_id, error=str(exc))
        result = _failed(
            languages,
            status="not_configured",
            message=f"translation service not configured: {exc}",
            error_kind=ERROR_CONFIGURATION,
        )
    except TranslationClientError as exc:
        logger.error("translation_request_failed", content_type=content_type, content_id=content_id, error=str(exc))
        result = _failed(languages, status="failed", message=f"translation failed: {exc}", error_kind=ERROR_API)
    else:
        if not response.outcomes and not response.success:
            is_configuration = NOT_CONFIGURED_MARKER in response.message.lower()
            result = _failed(
                languages,
                status="not_configured" if is_configuration else "failed",
                message=response.message or "translation failed",
                error_kind=ERROR_CONFIGURATION if is_configuration else ERROR_API,
            )
        else:
            statuses = reconcile_language_status(languages, response.outcomes)
            success_count = sum(1 for state in statuses.values() if state == STATUS_SUCCESS)
            error_count = len(statuses) - success_count
            if error_count == 0:
                status, message = "completed", f"translated into {success_count} languages"
            elif success_count == 0:
                status, message = "failed", "translation failed for every language"
            else:
                status, message = "partial", f"translated into {success_count} of {len(statuses)} languages"
            result = TranslationFanoutResult(
                success=success_count > 0,
                status=status,
                message=message,
                languages=statuses,
                success_count=success_count,
                error_count=error_count,
                error_kind=None if success_count > 0 else ERROR_API,
                outcomes=response.outcomes,
            )

    if on_status is not None:
        on_status(dict(result.languages))
    logger.info(
        "translation_fanout_finished",
        content_type=content_type,
        content_id=content_id,
        status=result.status,
        success_count=result.success_count,
        error_count=result.error_count,
        requested_by=admin.user_id,
    )
    return result


def load_translations(session: Session, *, content_type: str, content_id: str, language_code: str) -> Dict[str, str]:
    """Stored translations of one item as ``{field_name: text}``; empty for the source language."""

    language = language_code.strip().lower()
    if not language or language == get_settings().translation_source_language.strip().lower():
        return {}
    try:
        rows = session.scalars(
            select(ContentTranslation).where(
                ContentTranslation.content_type == content_type,
                ContentTranslation.content_id == content_id,
                ContentTranslation.language_code == language,
            )
        ).all()
    except SQLAlchemyError as exc:
        logger.error("translations_load_failed", content_type=content_type, content_id=content_id, error=str(exc))
        return {}
    return {row.field_name: row.translated_text for row in rows}


def apply_translations(original: Mapping[str, Any], translations: Mapping[str, str]) -> Dict[str, Any]:
    result = dict(original)
    for field_name, text in translations.items():
        if text and text.strip():
            result[field_name] = text
    return result
