from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal_admin.api.main as api_main
from portal_admin.auth.jwt import AdminContext, create_access_token
from portal_admin.core.config import get_settings
from portal_admin.storage.db import Base, get_session, load_models
from portal_admin.translation.client import TranslationOutcome, TranslationResponse, get_translation_client
from portal_admin.translation.function import get_deepl_client


class _FakeTranslationClient:
    def __init__(self) -> None:
        self.calls = []

    def translate(self, **kwargs) -> TranslationResponse:
        self.calls.append(kwargs)
        return TranslationResponse(
            success=False,
            message="Some translations failed",
            outcomes=(
                TranslationOutcome(field="title", language="de", success=True, translation="Handbuch"),
                TranslationOutcome(field="title", language="fr", success=False, error="quota exceeded"),
            ),
        )


class _FakeDeepL:
    def __init__(self, *, configured: bool = True) -> None:
        self.configured = configured

    def translate(self, text: str, *, target_language: str, source_language: str = "en") -> str:
        return f"{text} ({target_language})"


@pytest.fixture()
def translation_api(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "translation-api-test-secret-key-0123456789")
    get_settings.cache_clear()
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fake_client = _FakeTranslationClient()
    token, _ = create_access_token(AdminContext(user_id=str(uuid.uuid4()), email="editor@portal.io", role="content-manager"))
    api_main.app.dependency_overrides[get_session] = override_get_session
    api_main.app.dependency_overrides[get_translation_client] = lambda: fake_client
    api_main.app.dependency_overrides[get_deepl_client] = lambda: _FakeDeepL()
    try:
        yield TestClient(api_main.app), {"Authorization": f"Bearer {token}"}, fake_client, token
    finally:
        api_main.app.dependency_overrides.clear()
        get_settings.cache_clear()


def test_translate_endpoint_reports_per_language_status(translation_api) -> None:
    client, headers, fake_client, token = translation_api

    response = client.post(
        "/translations",
        headers=headers,
        json={
            "content_type": "documentation",
            "content_id": "doc-1",
            "fields": {"title": "Manual"},
            "target_languages": ["de", "fr"],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["languages"] == {"de": "success", "fr": "error"}
    assert body["status"] == "partial"
    assert body["failed_languages"] == ["fr"]
    assert fake_client.calls[0]["access_token"] == token


def test_function_endpoint_stores_and_serves_translations(translation_api) -> None:
    client, headers, _, _ = translation_api

    response = client.post(
        "/functions/v1/translate-content",
        headers=headers,
        json={
            "contentType": "announcement",
            "contentId": "ann-1",
            "sourceLanguage": "en",
            "targetLanguages": ["de"],
            "fields": {"title": "Launch", "content": "New scanner"},
        },
    )

    assert response.status_code == 200
    assert response.json()["success"] is True

    stored = client.get("/translations/announcement/ann-1/DE", headers=headers)
    assert stored.status_code == 200
    assert stored.json()["translations"] == {"title": "Launch (de)", "content": "New scanner (de)"}


def test_function_endpoint_without_provider_key_returns_503(translation_api) -> None:
    client, headers, _, _ = translation_api
    api_main.app.dependency_overrides[get_deepl_client] = lambda: _FakeDeepL(configured=False)

    response = client.post(
        "/functions/v1/translate-content",
        headers=headers,
        json={"contentType": "announcement", "contentId": "ann-1", "targetLanguages": ["de"], "fields": {"title": "x"}},
    )

    assert response.status_code == 503
    assert "not configured" in response.json()["error"]


def test_translation_routes_require_authentication(translation_api) -> None:
    client, _, _, _ = translation_api

    response = client.post(
        "/translations",
        json={"content_type": "documentation", "content_id": "doc-1", "fields": {"title": "x"}, "target_languages": ["de"]},
    )
    assert response.status_code == 401
