from __future__ import annotations

import uuid

import pytest
from starlette.requests import Request

from portal_admin.auth.dependencies import require_admin_role
from portal_admin.auth.jwt import AdminContext, create_access_token, decode_access_token
from portal_admin.auth.middleware import bearer_token, resolve_request_admin_context
from portal_admin.core.config import get_settings


@pytest.fixture(autouse=True)
def _secret_key(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "auth-test-secret-key-0123456789abcdef")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _request(authorization: str | None) -> Request:
    headers = [] if authorization is None else [(b"authorization", authorization.encode("latin-1"))]
    return Request({"type": "http", "method": "GET", "path": "/releases", "headers": headers})


def test_bearer_token_parsing() -> None:
    assert bearer_token(_request("Bearer abc.def")) == "abc.def"
    assert bearer_token(_request("bearer   abc")) == "abc"
    assert bearer_token(_request("Basic dXNlcjpwdw==")) is None
    assert bearer_token(_request("Bearer ")) is None
    assert bearer_token(_request(None)) is None


def test_token_round_trip_keeps_raw_credential() -> None:
    context = AdminContext(user_id=str(uuid.uuid4()), email="ops@portal.io", role="content-manager")
    token, expires_in = create_access_token(context)

    decoded = decode_access_token(token)

    assert expires_in == get_settings().access_token_exp_minutes * 60
    assert decoded.user_id == context.user_id
    assert decoded.role == "content-manager"
    assert decoded.access_token == token


def test_unknown_role_and_bad_tokens_resolve_to_anonymous() -> None:
    token, _ = create_access_token(AdminContext(user_id="u-1", email="x@portal.io", role="distributor"))

    assert resolve_request_admin_context(_request(f"Bearer {token}")) is None
    assert resolve_request_admin_context(_request("Bearer not-a-jwt")) is None


def test_role_dependency_rejects_unknown_role_names() -> None:
    with pytest.raises(ValueError):
        require_admin_role("owner")
    with pytest.raises(ValueError):
        require_admin_role()
