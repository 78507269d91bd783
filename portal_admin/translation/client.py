"""HTTP client for the content translation function."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Sequence

import httpx

from portal_admin.core.config import get_settings


NOT_CONFIGURED_MARKER = "not configured"


class TranslationClientError(RuntimeError):
    """Raised when the translation endpoint cannot be reached or answers badly."""


class TranslationNotConfiguredError(TranslationClientError):
    """Raised when no endpoint or no translation provider is configured."""


@dataclass(frozen=True)
class TranslationOutcome:
    field: str
    language: str
    success: bool
    translation: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TranslationResponse:
    success: bool
    message: str
    outcomes: tuple[TranslationOutcome, ...] = ()


def _outcome(item: Any) -> Optional[TranslationOutcome]:
    if not isinstance(item, dict):
        return None
    language = str(item.get("language") or "").strip().lower()
    if not language:
        return None
    return TranslationOutcome(
        field=str(item.get("field") or ""),
        language=language,
        success=item.get("success") is True,
        translation=item.get("translation"),
        error=item.get("error"),
    )


def parse_translation_response(body: Any) -> TranslationResponse:
    if not isinstance(body, dict):
        raise TranslationClientError("translation_invalid_payload")
    raw_results = body.get("results")
    outcomes = tuple(
        outcome for outcome in (_outcome(item) for item in (raw_results if isinstance(raw_results, list) else []))
        if outcome is not None
    )
    message = str(body.get("message") or body.get("error") or "")
    return TranslationResponse(success=body.get("success") is True, message=message, outcomes=outcomes)


class TranslationFunctionClient:
    def __init__(
        self,
        *,
        function_url: str,
        api_key: str = "",
        timeout_seconds: int = 120,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._function_url = function_url.strip()
        self._api_key = api_key.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self, access_token: str) -> Dict[str, str]:
        if not access_token.strip():
            raise TranslationClientError("translation_access_token_missing")
        headers = {
            "Authorization": f"Bearer {access_token.strip()}",
            "Content-Type": "application/json",
        }
        if self._api_key:
            headers["apikey"] = self._api_key
        return headers

    def translate(
        self,
        *,
        access_token: str,
        content_type: str,
        content_id: str,
        source_language: str,
        target_languages: Sequence[str],
        fields: Dict[str, str],
    ) -> TranslationResponse:
        if not self._function_url:
            raise TranslationNotConfiguredError("translation endpoint not configured")

        payload = {
            "contentType": content_type,
            "contentId": content_id,
            "sourceLanguage": source_language,
            "targetLanguages": list(target_languages),
            "fields": fields,
        }
        headers = self._headers(access_token)
        try:
            if self._client is not None:
                response = self._client.post(self._function_url, headers=headers, json=payload)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(self._function_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise TranslationClientError(f"translation_transport_error detail={exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code < 200 or response.status_code >= 300:
            detail = ""
            if isinstance(body, dict):
                detail = str(body.get("error") or body.get("detail") or "")
            if not detail:
                detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            if NOT_CONFIGURED_MARKER in detail.lower():
                raise TranslationNotConfiguredError(detail)
            raise TranslationClientError(f"translation_request_failed status={response.status_code} detail={detail}")

        if body is None:
            raise TranslationClientError("translation_invalid_json_response")
        return parse_translation_response(body)


@lru_cache(maxsize=1)
def get_translation_client() -> TranslationFunctionClient:
    settings = get_settings()
    return TranslationFunctionClient(
        function_url=settings.resolved_translation_function_url,
        api_key=settings.backend_api_key,
        timeout_seconds=settings.translation_timeout_seconds,
    )
