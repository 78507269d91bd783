"""Decoding of base64 file payloads carried in JSON request bodies."""

from __future__ import annotations

import base64
import binascii

from fastapi import HTTPException, status

from portal_admin.content.service import ArtifactUpload
from portal_admin.ingestion.titles import PendingFile
from portal_admin.schemas.content import FileUploadPayload


def decode_base64(data: str) -> bytes:
    cleaned = data.strip()
    if cleaned.startswith("data:") and "," in cleaned:
        cleaned = cleaned.split(",", 1)[1]
    return base64.b64decode(cleaned, validate=True)


def _decode(payload: FileUploadPayload) -> bytes:
    try:
        content = decode_base64(payload.content_base64)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"invalid_base64_file filename={payload.filename}",
        ) from exc
    if not content:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"empty_file filename={payload.filename}",
        )
    return content


def to_artifact(payload: FileUploadPayload) -> ArtifactUpload:
    return ArtifactUpload(filename=payload.filename, content=_decode(payload), content_type=payload.content_type)


def to_pending_file(payload: FileUploadPayload) -> PendingFile:
    return PendingFile(
        filename=payload.filename,
        content=_decode(payload),
        content_type=payload.content_type,
        title=payload.title or "",
    )
