"""FastAPI application entrypoint for the portal admin service."""

from __future__ import annotations

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal_admin.admin_users.router import router as admin_users_router
from portal_admin.auth.middleware import AUTH_CONTEXT_KEY, resolve_request_admin_context
from portal_admin.auth.router import router as auth_router
from portal_admin.content.router import router as content_router
from portal_admin.core.config import get_settings
from portal_admin.core.logger import bind_request_context, clear_request_context, get_logger
from portal_admin.ingestion.router import router as ingestion_router
from portal_admin.releases.router import router as releases_router
from portal_admin.sharing.router import router as sharing_router
from portal_admin.storage.db import load_models
from portal_admin.storage.db import test_connection as test_db_connection
from portal_admin.translation.router import function_router as translation_function_router
from portal_admin.translation.router import router as translation_router


settings = get_settings()
logger = get_logger("portal_admin.api")

app = FastAPI(title=settings.app_name, version=settings.app_version)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    admin_context = resolve_request_admin_context(request)
    setattr(request.state, AUTH_CONTEXT_KEY, admin_context)
    bind_request_context(
        request_id=request_id,
        admin_user_id=admin_context.user_id if admin_context is not None else None,
    )

    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((perf_counter() - started_at) * 1000, 2),
        )
        clear_request_context()

    response.headers["x-request-id"] = request_id
    return response


@app.on_event("startup")
def on_startup() -> None:
    load_models()
    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        object_storage_backend=settings.object_storage_backend,
        translation_configured=bool(settings.resolved_translation_function_url),
        release_compensation_enabled=settings.release_compensation_enabled,
    )


@app.get("/health")
def health() -> JSONResponse:
    db_ok, db_error = test_db_connection()
    status = "ok" if db_ok else "degraded"

    payload = {
        "status": status,
        "env": settings.env,
        "services": {
            "database": {"ok": db_ok, "error": db_error},
        },
    }

    return JSONResponse(content=payload, status_code=200 if db_ok else 503)


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
    }


app.include_router(auth_router)
app.include_router(admin_users_router)
app.include_router(ingestion_router)
app.include_router(sharing_router)
app.include_router(content_router)
app.include_router(releases_router)
app.include_router(translation_router)
app.include_router(translation_function_router)
