import structlog

from portal_admin.core.logger import _service_context, bind_request_context, clear_request_context


def test_service_context_fills_defaults_without_overwriting() -> None:
    processor = _service_context("portal_admin", "test")

    event = processor(None, "info", {"event": "sharing_saved", "request_id": "req-1"})

    assert event["service"] == "portal_admin"
    assert event["env"] == "test"
    assert event["request_id"] == "req-1"
    assert event["admin_user_id"] is None


def test_request_context_binds_and_clears() -> None:
    bind_request_context(request_id="req-9", admin_user_id="admin-1")
    try:
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-9", "admin_user_id": "admin-1"}
    finally:
        clear_request_context()
    assert structlog.contextvars.get_contextvars() == {}
