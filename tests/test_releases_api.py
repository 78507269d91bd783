from __future__ import annotations

import base64
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal_admin.api.main as api_main
from portal_admin.admin_users.service import NewAdminUser, create_admin_user
from portal_admin.auth.jwt import AdminContext, create_access_token
from portal_admin.core.config import get_settings
from portal_admin.integrations.email import get_resend_client
from portal_admin.storage.db import Base, get_session, load_models
from portal_admin.storage.models import Customer, Device, Distributor
from portal_admin.storage.objects import FilesystemObjectStorage, get_object_storage


class _SilentEmail:
    configured = False

    def send(self, message):
        raise AssertionError("no e-mail expected")


@pytest.fixture()
def release_api(monkeypatch, tmp_path):
    monkeypatch.setenv("SECRET_KEY", "releases-api-test-secret-key-0123456789")
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

    session = session_factory()
    try:
        created = create_admin_user(
            session,
            AdminContext(user_id=str(uuid.uuid4()), email="bootstrap@portal.io", role="super-admin"),
            NewAdminUser(email="releases@portal.io", password="releases-pass-1", full_name="Release Manager", role="admin"),
        )
        alpha = Distributor(id=str(uuid.uuid4()), company_name="Alpha")
        customer = Customer(id=str(uuid.uuid4()), company_name="City Clinic", distributor_id=alpha.id)
        session.add_all([alpha, customer])
        session.flush()
        session.add_all(
            [
                Device(id=str(uuid.uuid4()), device_name="Scanner North", serial_number="SN-100", customer_id=customer.id),
                Device(id=str(uuid.uuid4()), device_name="Scanner South", serial_number="SN-200", customer_id=customer.id),
                Device(id=str(uuid.uuid4()), device_name="Retired", serial_number="SN-300", status="inactive"),
            ]
        )
        session.commit()
        distributor_id = alpha.id
    finally:
        session.close()

    token, _ = create_access_token(AdminContext(user_id=created.user_id, email="releases@portal.io", role="admin"))
    storage = FilesystemObjectStorage(root=tmp_path, public_base_url="https://files.portal.io")
    api_main.app.dependency_overrides[get_session] = override_get_session
    api_main.app.dependency_overrides[get_object_storage] = lambda: storage
    api_main.app.dependency_overrides[get_resend_client] = lambda: _SilentEmail()
    try:
        yield TestClient(api_main.app), {"Authorization": f"Bearer {token}"}, distributor_id
    finally:
        api_main.app.dependency_overrides.clear()
        get_settings.cache_clear()


def _release_payload(**overrides) -> dict:
    payload = {
        "name": "Visum Palm Firmware",
        "version": "4.0.0",
        "release_type": "firmware",
        "file": {"filename": "visum_4.0.0.bin", "content_base64": base64.b64encode(b"\x7fELF").decode("ascii")},
        "notify_on_publish": False,
    }
    payload.update(overrides)
    return payload


def test_release_without_selected_distributors_is_a_targeting_error(release_api) -> None:
    client, headers, _ = release_api

    response = client.post("/releases", headers=headers, json=_release_payload(target_type="distributors"))

    assert response.status_code == 422
    assert response.json()["detail"]["section"] == "targeting"
    assert client.get("/releases", headers=headers).json()["items"] == []


def test_release_without_file_is_a_file_error(release_api) -> None:
    client, headers, _ = release_api

    response = client.post("/releases", headers=headers, json=_release_payload(file=None))

    assert response.status_code == 422
    assert response.json()["detail"]["section"] == "file"


def test_release_lifecycle_create_publish_deprecate(release_api) -> None:
    client, headers, distributor_id = release_api

    created = client.post(
        "/releases",
        headers=headers,
        json=_release_payload(target_type="distributors", distributor_ids=[distributor_id]),
    )
    assert created.status_code == 201
    release_id = created.json()["release_id"]
    assert created.json()["committed_steps"] == ["validate", "upload", "create", "target"]

    targets = client.get(f"/releases/{release_id}/targets", headers=headers).json()
    assert targets == {"release_id": release_id, "target_type": "distributors", "ids": [distributor_id]}

    duplicate = client.post("/releases", headers=headers, json=_release_payload())
    assert duplicate.status_code == 422
    assert duplicate.json()["detail"]["section"] == "basic"

    published = client.post(f"/releases/{release_id}/publish", headers=headers)
    assert published.status_code == 200
    assert published.json()["status"] == "published"

    refused_delete = client.delete(f"/releases/{release_id}", headers=headers)
    assert refused_delete.status_code == 409

    deprecated = client.post(f"/releases/{release_id}/deprecate", headers=headers)
    assert deprecated.json()["status"] == "deprecated"

    listing = client.get("/releases", headers=headers, params={"status_filter": "deprecated"}).json()
    assert [item["id"] for item in listing["items"]] == [release_id]
    assert listing["items"][0]["file_size_label"] == "4.0 B"


def test_retarget_to_devices_and_notify(release_api) -> None:
    client, headers, _ = release_api
    release_id = client.post("/releases", headers=headers, json=_release_payload()).json()["release_id"]

    devices = client.get("/releases/devices", headers=headers, params={"query": "scanner"}).json()["items"]
    assert [device["device_name"] for device in devices] == ["Scanner North", "Scanner South"]
    assert devices[0]["customer_name"] == "City Clinic"

    retargeted = client.put(
        f"/releases/{release_id}/targets",
        headers=headers,
        json={"target_type": "devices", "device_ids": [device["id"] for device in devices]},
    )
    assert retargeted.status_code == 200

    notified = client.post(f"/releases/{release_id}/notify", headers=headers, json={"only_unnotified": True})
    assert notified.status_code == 200
    assert notified.json()["status"] == "no_recipients"

    missing_selection = client.put(
        f"/releases/{release_id}/targets",
        headers=headers,
        json={"target_type": "devices", "device_ids": []},
    )
    assert missing_selection.status_code == 422


def test_unknown_release_actions_are_not_found(release_api) -> None:
    client, headers, _ = release_api

    assert client.post(f"/releases/{uuid.uuid4()}/publish", headers=headers).status_code == 404
    assert client.delete(f"/releases/{uuid.uuid4()}", headers=headers).status_code == 404


def test_targetable_distributors_are_listed_by_name(release_api) -> None:
    client, headers, distributor_id = release_api

    response = client.get("/releases/distributors", headers=headers)
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [distributor_id]

    filtered = client.get("/releases/distributors", headers=headers, params={"query": "zeta"})
    assert filtered.json()["items"] == []
