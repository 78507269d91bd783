"""Translation API routes: fan-out coordination, stored lookups and the function endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from portal_admin.auth.dependencies import require_admin_context, require_admin_role
from portal_admin.auth.jwt import CONTENT_EDITOR_ROLES, AdminContext
from portal_admin.schemas.translation import (
    StoredTranslationsResponse,
    TranslateRequest,
    TranslateResponse,
    TranslationFunctionRequest,
)
from portal_admin.storage.db import get_session
from portal_admin.storage.rls import set_admin_context
from portal_admin.translation.client import TranslationFunctionClient, get_translation_client
from portal_admin.translation.function import DeepLClient, get_deepl_client, run_translation, serialize_run_result
from portal_admin.translation.service import load_translations, translate_content


router = APIRouter(prefix="/translations", tags=["translations"])
function_router = APIRouter(prefix="/functions/v1", tags=["functions"])


@router.post("", response_model=TranslateResponse)
def translate_endpoint(
    payload: TranslateRequest,
    admin: AdminContext = Depends(require_admin_role(*CONTENT_EDITOR_ROLES)),
    client: TranslationFunctionClient = Depends(get_translation_client),
) -> TranslateResponse:
    result = translate_content(
        admin,
        content_type=payload.content_type,
        content_id=payload.content_id,
        fields=payload.fields,
        target_languages=payload.target_languages,
        source_language=payload.source_language,
        client=client,
    )
    return TranslateResponse(
        success=result.success,
        status=result.status,
        message=result.message,
        languages=result.languages,
        success_count=result.success_count,
        error_count=result.error_count,
        error_kind=result.error_kind,
        failed_languages=result.failed_languages,
    )


@router.get("/{content_type}/{content_id}/{language_code}", response_model=StoredTranslationsResponse)
def stored_translations(
    content_type: str,
    content_id: str,
    language_code: str,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
) -> StoredTranslationsResponse:
    del admin
    return StoredTranslationsResponse(
        content_type=content_type,
        content_id=content_id,
        language_code=language_code.lower(),
        translations=load_translations(
            session,
            content_type=content_type,
            content_id=content_id,
            language_code=language_code,
        ),
    )


@function_router.post("/translate-content")
def translate_content_function(
    payload: TranslationFunctionRequest,
    admin: AdminContext = Depends(require_admin_context),
    session: Session = Depends(get_session),
    translator: DeepLClient = Depends(get_deepl_client),
) -> JSONResponse:
    set_admin_context(session, admin.user_id)
    result = run_translation(
        session,
        content_type=payload.content_type,
        content_id=payload.content_id,
        source_language=payload.source_language,
        target_languages=payload.target_languages,
        fields=payload.fields,
        translator=translator,
    )
    return JSONResponse(
        content=serialize_run_result(result),
        status_code=200 if result.configured else 503,
    )
