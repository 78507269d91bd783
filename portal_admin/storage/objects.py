"""Object storage backends for content and release artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
import hashlib
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import quote

import httpx

from portal_admin.core.config import get_settings


class ObjectStorageError(RuntimeError):
    """Raised when an artifact cannot be stored or removed."""


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    public_url: str
    size_bytes: int
    sha256: str


class ObjectStorage(Protocol):
    backend_name: str

    def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> StoredObject:
        raise NotImplementedError

    def delete(self, bucket: str, path: str) -> None:
        raise NotImplementedError


def file_extension(filename: str) -> str:
    name = filename.strip().rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].strip().lower()


def build_object_path(owner_id: str, filename: str, *, folder: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Return ``{folder/}{owner_id}-{epoch_ms}.{ext}`` so repeated uploads never collide."""

    moment = now or datetime.now(timezone.utc)
    timestamp = int(moment.timestamp() * 1000)
    extension = file_extension(filename) or "bin"
    name = f"{owner_id}-{timestamp}.{extension}"
    if folder:
        return f"{folder.strip('/')}/{name}"
    return name


def _digest(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class FilesystemObjectStorage:
    backend_name = "filesystem"

    def __init__(self, *, root: Path, public_base_url: str = "") -> None:
        self._root = root
        self._public_base_url = public_base_url.strip().rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self._root / bucket / path).resolve()
        bucket_root = (self._root / bucket).resolve()
        if bucket_root not in target.parents:
            raise ObjectStorageError(f"object_path_outside_bucket path={path}")
        return target

    def public_url(self, bucket: str, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{bucket}/{quote(path)}"
        return self._resolve(bucket, path).as_uri()

    def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> StoredObject:
        del content_type
        target = self._resolve(bucket, path)
        if target.exists():
            raise ObjectStorageError(f"object_already_exists bucket={bucket} path={path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise ObjectStorageError(f"object_write_failed bucket={bucket} path={path} detail={exc}") from exc
        return StoredObject(
            bucket=bucket,
            path=path,
            public_url=self.public_url(bucket, path),
            size_bytes=len(content),
            sha256=_digest(content),
        )

    def delete(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise ObjectStorageError(f"object_delete_failed bucket={bucket} path={path} detail={exc}") from exc


class HttpObjectStorage:
    """Storage REST API of the managed backend (``/storage/v1``)."""

    backend_name = "http"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: int = 60,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._api_key = api_key.strip()
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        if not self._api_key:
            raise ObjectStorageError("object_storage_api_key_missing")
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "apikey": self._api_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return self._client.request(method, url, **kwargs)
            with httpx.Client(timeout=self._timeout_seconds) as client:
                return client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ObjectStorageError(f"object_storage_transport_error detail={exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if 200 <= response.status_code < 300:
            return
        detail = response.text.strip()
        if len(detail) > 200:
            detail = detail[:200] + "..."
        raise ObjectStorageError(f"object_{action}_failed status={response.status_code} detail={detail}")

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> StoredObject:
        if not self._base_url:
            raise ObjectStorageError("object_storage_base_url_missing")
        headers = self._headers(content_type or "application/octet-stream")
        headers["x-upsert"] = "false"
        headers["cache-control"] = "3600"
        response = self._send(
            "POST",
            f"{self._base_url}/storage/v1/object/{bucket}/{quote(path)}",
            headers=headers,
            content=content,
        )
        self._raise_for_status(response, "upload")
        return StoredObject(
            bucket=bucket,
            path=path,
            public_url=self.public_url(bucket, path),
            size_bytes=len(content),
            sha256=_digest(content),
        )

    def delete(self, bucket: str, path: str) -> None:
        if not self._base_url:
            raise ObjectStorageError("object_storage_base_url_missing")
        response = self._send(
            "DELETE",
            f"{self._base_url}/storage/v1/object/{bucket}",
            headers=self._headers("application/json"),
            json={"prefixes": [path]},
        )
        self._raise_for_status(response, "delete")


def _storage_root() -> Path:
    settings = get_settings()
    configured = Path(settings.object_storage_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


@lru_cache(maxsize=1)
def get_object_storage() -> ObjectStorage:
    settings = get_settings()
    backend = settings.object_storage_backend.strip().lower()
    if backend == "http":
        return HttpObjectStorage(
            base_url=settings.backend_url,
            api_key=settings.backend_api_key,
            timeout_seconds=settings.object_storage_timeout_seconds,
        )
    return FilesystemObjectStorage(
        root=_storage_root(),
        public_base_url=settings.object_storage_public_base_url,
    )
