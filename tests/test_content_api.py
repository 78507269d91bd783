from __future__ import annotations

import base64
from dataclasses import dataclass
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal_admin.api.main as api_main
from portal_admin.admin_users.service import NewAdminUser, create_admin_user
from portal_admin.auth.jwt import AdminContext
from portal_admin.core.config import get_settings
from portal_admin.storage.db import Base, get_session, load_models
from portal_admin.storage.models import Distributor
from portal_admin.storage.objects import FilesystemObjectStorage, get_object_storage


BOOTSTRAP = AdminContext(user_id=str(uuid.uuid4()), email="bootstrap@portal.io", role="super-admin")


@dataclass
class ApiContext:
    client: TestClient
    session_factory: sessionmaker

    def login(self, email: str, password: str) -> dict[str, str]:
        response = self.client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    def add_admin(self, email: str, role: str, password: str = "portal-secret-123") -> dict[str, str]:
        session = self.session_factory()
        try:
            result = create_admin_user(
                session,
                BOOTSTRAP,
                NewAdminUser(email=email, password=password, full_name=email.split("@")[0], role=role),
            )
            assert result.success is True
        finally:
            session.close()
        return self.login(email, password)

    def add_distributor(self, name: str) -> str:
        session = self.session_factory()
        try:
            distributor = Distributor(id=str(uuid.uuid4()), company_name=name)
            session.add(distributor)
            session.commit()
            return distributor.id
        finally:
            session.close()


@pytest.fixture()
def api(monkeypatch, tmp_path):
    monkeypatch.setenv("SECRET_KEY", "content-api-test-secret-key-0123456789")
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

    storage = FilesystemObjectStorage(root=tmp_path, public_base_url="https://files.portal.io")
    api_main.app.dependency_overrides[get_session] = override_get_session
    api_main.app.dependency_overrides[get_object_storage] = lambda: storage
    try:
        yield ApiContext(client=TestClient(api_main.app), session_factory=session_factory)
    finally:
        api_main.app.dependency_overrides.clear()
        get_settings.cache_clear()


def _file(filename: str, content: bytes) -> dict[str, str]:
    return {"filename": filename, "content_base64": base64.b64encode(content).decode("ascii")}


def test_login_rejects_unknown_credentials(api) -> None:
    response = api.client.post("/auth/login", json={"email": "nobody@portal.io", "password": "not-a-password"})
    assert response.status_code == 401


def test_login_returns_admin_identity(api) -> None:
    api.add_admin("lead@portal.io", "admin", password="lead-pass-123")

    response = api.client.post("/auth/login", json={"email": "lead@portal.io", "password": "lead-pass-123"})

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "lead@portal.io"
    assert body["role"] == "admin"
    assert body["user_id"]
    assert body["token_type"] == "bearer"


def test_content_routes_require_authentication_and_editor_role(api) -> None:
    assert api.client.get("/content/documentation").status_code == 401

    viewer = api.add_admin("viewer@portal.io", "viewer")
    assert api.client.get("/content/documentation", headers=viewer).status_code == 200
    forbidden = api.client.post(
        "/content/documentation",
        headers=viewer,
        json={"fields": {"title": "Manual", "category": "manual"}},
    )
    assert forbidden.status_code == 403


def test_create_share_and_list_for_distributor(api) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")
    alpha = api.add_distributor("Alpha")
    beta = api.add_distributor("Beta")

    created = api.client.post(
        "/content/documentation",
        headers=editor,
        json={
            "fields": {"title": "Install Guide", "category": "manual", "status": "published"},
            "file": _file("install_guide.pdf", b"%PDF-1.7 guide"),
            "distributor_ids": ["", alpha],
        },
    )
    assert created.status_code == 201
    body = created.json()
    content_id = body["content_id"]
    assert body["file_url"].startswith("https://files.portal.io/documentation/")

    sharing = api.client.get(f"/content/documentation/{content_id}/sharing", headers=editor)
    assert sharing.status_code == 200
    assert sharing.json()["distributor_ids"] == [alpha]
    assert sharing.json()["label"] == "1 Distributor"

    alpha_view = api.client.get(f"/distributors/{alpha}/content/documentation", headers=editor)
    beta_view = api.client.get(f"/distributors/{beta}/content/documentation", headers=editor)
    assert [item["id"] for item in alpha_view.json()["items"]] == [content_id]
    assert beta_view.json()["items"] == []

    cleared = api.client.put(
        f"/content/documentation/{content_id}/sharing",
        headers=editor,
        json={"distributor_ids": []},
    )
    assert cleared.status_code == 200
    assert cleared.json()["status"] == "public"
    beta_view = api.client.get(f"/distributors/{beta}/content/documentation", headers=editor)
    assert [item["id"] for item in beta_view.json()["items"]] == [content_id]


def test_sharing_save_rejected_silently_returns_retryable_error(api) -> None:
    editor = api.add_admin("editor@portal.io", "admin")
    alpha = api.add_distributor("Alpha")
    created = api.client.post(
        "/content/marketing_asset",
        headers=editor,
        json={"fields": {"name": "Brochure", "type": "brochure"}},
    )
    content_id = created.json()["content_id"]

    session = api.session_factory()
    try:
        session.execute(
            text(
                "CREATE TRIGGER reject_asset_sharing BEFORE INSERT ON marketing_asset_distributors "
                "BEGIN SELECT RAISE(IGNORE); END;"
            )
        )
        session.commit()
    finally:
        session.close()

    response = api.client.put(
        f"/content/marketing_asset/{content_id}/sharing",
        headers=editor,
        json={"distributor_ids": [alpha]},
    )
    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["requires_retry"] is True
    assert detail["status"] == "failed"


def test_unknown_fields_and_missing_items(api) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")

    invalid = api.client.post(
        "/content/announcement",
        headers=editor,
        json={"fields": {"title": "News", "category": "general", "colour": "red"}},
    )
    assert invalid.status_code == 422

    missing = api.client.get(f"/content/announcement/{uuid.uuid4()}", headers=editor)
    assert missing.status_code == 404

    bad_file = api.client.post(
        "/content/announcement",
        headers=editor,
        json={"fields": {"title": "News", "category": "general"}, "file": {"filename": "a.pdf", "content_base64": "***"}},
    )
    assert bad_file.status_code == 422


def test_delete_removes_record_and_artifact(api, tmp_path) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")
    created = api.client.post(
        "/content/training_material",
        headers=editor,
        json={"fields": {"title": "Onboarding", "type": "video"}, "file": _file("onboarding.mp4", b"\x00\x00video")},
    ).json()
    stored_files = list((tmp_path / "training-resources").iterdir())
    assert len(stored_files) == 1

    deleted = api.client.delete(f"/content/training_material/{created['content_id']}", headers=editor)

    assert deleted.status_code == 200
    assert deleted.json()["status"] == "deleted"
    assert list((tmp_path / "training-resources").iterdir()) == []
    assert api.client.get(f"/content/training_material/{created['content_id']}", headers=editor).status_code == 404


def test_create_with_unknown_distributor_writes_nothing(api, tmp_path) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")
    alpha = api.add_distributor("Alpha")

    response = api.client.post(
        "/content/documentation",
        headers=editor,
        json={
            "fields": {"title": "Install Guide", "category": "manual"},
            "file": _file("install_guide.pdf", b"%PDF-1.7 guide"),
            "distributor_ids": [alpha, "ghost-distributor"],
        },
    )

    assert response.status_code == 422
    assert "ghost-distributor" in response.json()["detail"]
    assert not (tmp_path / "documentation").exists()
    assert api.client.get("/content/documentation", headers=editor).json()["items"] == []


def test_batch_with_unknown_distributor_writes_nothing(api, tmp_path) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")

    response = api.client.post(
        "/content/documentation/batch",
        headers=editor,
        json={
            "files": [_file("a.pdf", b"%PDF-1"), _file("b.pdf", b"%PDF-2")],
            "shared_fields": {"category": "manual"},
            "distributor_ids": ["ghost-distributor"],
        },
    )

    assert response.status_code == 422
    assert not (tmp_path / "documentation").exists()
    assert api.client.get("/content/documentation", headers=editor).json()["items"] == []


def test_delete_with_sharing_rows_kept_by_policy_fails_and_keeps_item(api, tmp_path) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")
    alpha = api.add_distributor("Alpha")
    created = api.client.post(
        "/content/training_material",
        headers=editor,
        json={
            "fields": {"title": "Onboarding", "type": "video"},
            "file": _file("onboarding.mp4", b"\x00\x00video"),
            "distributor_ids": [alpha],
        },
    ).json()

    session = api.session_factory()
    try:
        session.execute(
            text(
                "CREATE TRIGGER keep_training_sharing BEFORE DELETE ON training_material_distributors "
                "BEGIN SELECT RAISE(IGNORE); END;"
            )
        )
        session.commit()
    finally:
        session.close()

    deleted = api.client.delete(f"/content/training_material/{created['content_id']}", headers=editor)

    assert deleted.status_code == 502
    assert "write_rejected_silently" in deleted.json()["detail"]
    assert api.client.get(f"/content/training_material/{created['content_id']}", headers=editor).status_code == 200
    assert len(list((tmp_path / "training-resources").iterdir())) == 1


def test_batch_endpoint_reports_progress_and_items(api) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")

    response = api.client.post(
        "/content/documentation/batch",
        headers=editor,
        json={
            "files": [
                _file("visum_palm_user_manual_v2.pdf", b"%PDF-1"),
                _file("QuickStartGuide.pdf", b"%PDF-2"),
            ],
            "shared_fields": {"category": "manual", "language": "German"},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["progress"] == [[1, 2], [2, 2]]
    assert [item["title"] for item in body["items"]] == ["Visum Palm User Manual V2", "Quick Start Guide"]

    listing = api.client.get("/content/documentation", headers=editor).json()
    assert {item["data"]["language"] for item in listing["items"]} == {"German"}


def test_batch_endpoint_rejects_missing_shared_fields(api) -> None:
    editor = api.add_admin("editor@portal.io", "content-manager")

    response = api.client.post(
        "/content/documentation/batch",
        headers=editor,
        json={"files": [_file("a.pdf", b"%PDF")], "shared_fields": {}},
    )

    assert response.status_code == 422


def test_admin_user_endpoint(api) -> None:
    root = api.add_admin("root@portal.io", "super-admin")
    editor = api.add_admin("editor@portal.io", "content-manager")

    created = api.client.post(
        "/admin-users",
        headers=root,
        json={"email": "viewer@portal.io", "password": "viewer-pass-1", "fullName": "View Only", "role": "viewer"},
    )
    assert created.status_code == 201
    assert created.json()["data"]["full_name"] == "View Only"

    conflict = api.client.post(
        "/admin-users",
        headers=root,
        json={"email": "viewer@portal.io", "password": "viewer-pass-1", "fullName": "View Only", "role": "viewer"},
    )
    assert conflict.status_code == 409

    forbidden = api.client.post(
        "/admin-users",
        headers=editor,
        json={"email": "x@portal.io", "password": "viewer-pass-1", "fullName": "X", "role": "viewer"},
    )
    assert forbidden.status_code == 403

    invalid = api.client.post(
        "/admin-users",
        headers=root,
        json={"email": "y@portal.io", "password": "short", "fullName": "Y", "role": "viewer"},
    )
    assert invalid.status_code == 422
