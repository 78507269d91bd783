from __future__ import annotations

import hashlib
import re
import uuid
from typing import Optional

from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.kinds import ContentKind
from portal_admin.ingestion.service import run_batch_ingestion
from portal_admin.ingestion.titles import PendingFile
from portal_admin.sharing.service import get_access_list
from portal_admin.storage.db import Base, load_models
from portal_admin.storage.models import Distributor, Documentation
from portal_admin.storage.objects import ObjectStorageError, StoredObject


ADMIN = AdminContext(user_id=str(uuid.uuid4()), email="editor@portal.io", role="content-manager")


class _MemoryStorage:
    backend_name = "memory"

    def __init__(self, *, fail_on_calls: Optional[set[int]] = None, crash_on_calls: Optional[set[int]] = None) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls = 0
        self.fail_on_calls = fail_on_calls or set()
        self.crash_on_calls = crash_on_calls or set()

    def upload(self, bucket: str, path: str, content: bytes, content_type: Optional[str] = None) -> StoredObject:
        del content_type
        self.calls += 1
        if self.calls in self.fail_on_calls:
            raise ObjectStorageError(f"object_upload_failed status=500 path={path}")
        if self.calls in self.crash_on_calls:
            raise RuntimeError("connection reset by peer")
        self.objects[(bucket, path)] = content
        return StoredObject(
            bucket=bucket,
            path=path,
            public_url=f"https://cdn.portal.io/{bucket}/{path}",
            size_bytes=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )

    def delete(self, bucket: str, path: str) -> None:
        self.objects.pop((bucket, path), None)


def _build_session() -> Session:
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    return factory()


def _files(count: int) -> list[PendingFile]:
    return [PendingFile(filename=f"service_manual_part_{index}.pdf", content=b"%PDF-" + bytes([index])) for index in range(1, count + 1)]


SHARED_FIELDS = {"category": "manual", "language": "English", "status": "published"}


def test_each_file_becomes_its_own_record_with_shared_fields() -> None:
    session = _build_session()
    storage = _MemoryStorage()
    try:
        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(3),
            shared_fields=SHARED_FIELDS,
            storage=storage,
        )

        assert result.success is True
        assert result.status == "completed"
        assert (result.total, result.success_count, result.error_count) == (3, 3, 0)
        documents = session.scalars(select(Documentation).order_by(Documentation.title)).all()
        assert [document.title for document in documents] == [
            "Service Manual Part 1",
            "Service Manual Part 2",
            "Service Manual Part 3",
        ]
        assert {document.category for document in documents} == {"manual"}
        assert {document.format for document in documents} == {"PDF"}
        assert all(document.created_by == ADMIN.user_id for document in documents)
        assert len(storage.objects) == 3
        for document in documents:
            assert re.fullmatch(rf"{document.id}-\d+\.pdf", document.file_path)
    finally:
        session.close()


def test_failure_of_one_file_does_not_stop_the_others() -> None:
    session = _build_session()
    storage = _MemoryStorage(fail_on_calls={2})
    try:
        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(4),
            shared_fields=SHARED_FIELDS,
            storage=storage,
        )

        assert result.success is True
        assert result.status == "partial"
        assert result.success_count == 3
        assert result.error_count == 1
        failed = [item for item in result.items if not item.success]
        assert len(failed) == 1
        assert failed[0].index == 2
        assert failed[0].filename == "service_manual_part_2.pdf"
        assert failed[0].stage == "upload"
        assert len(session.scalars(select(Documentation)).all()) == 3
    finally:
        session.close()


def test_progress_is_reported_once_per_file_in_order() -> None:
    session = _build_session()
    progress: list[tuple[int, int]] = []
    try:
        run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(3),
            shared_fields=SHARED_FIELDS,
            on_progress=lambda current, total: progress.append((current, total)),
            storage=_MemoryStorage(fail_on_calls={1}),
        )

        assert progress == [(1, 3), (2, 3), (3, 3)]
    finally:
        session.close()


def test_running_the_same_batch_twice_creates_duplicates() -> None:
    session = _build_session()
    storage = _MemoryStorage()
    try:
        files = _files(2)
        first = run_batch_ingestion(
            session, ADMIN, ContentKind.DOCUMENTATION, files, shared_fields=SHARED_FIELDS, storage=storage
        )
        second = run_batch_ingestion(
            session, ADMIN, ContentKind.DOCUMENTATION, files, shared_fields=SHARED_FIELDS, storage=storage
        )

        assert first.success_count == 2
        assert second.success_count == 2
        first_ids = {item.content_id for item in first.items}
        second_ids = {item.content_id for item in second.items}
        assert first_ids.isdisjoint(second_ids)
        assert len(session.scalars(select(Documentation)).all()) == 4
    finally:
        session.close()


def test_record_insert_rejected_silently_reports_create_stage() -> None:
    session = _build_session()
    try:
        session.execute(
            text("CREATE TRIGGER reject_documentation BEFORE INSERT ON documentation BEGIN SELECT RAISE(IGNORE); END;")
        )
        session.commit()

        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(2),
            shared_fields=SHARED_FIELDS,
            storage=_MemoryStorage(),
        )

        assert result.success is False
        assert result.status == "failed"
        assert [item.stage for item in result.items] == ["create", "create"]
        assert all("documentation" in item.message for item in result.items)
    finally:
        session.close()


def test_batch_applies_one_allow_list_to_every_record() -> None:
    session = _build_session()
    try:
        distributor = Distributor(id=str(uuid.uuid4()), company_name="Alpha")
        session.add(distributor)
        session.commit()

        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(2),
            shared_fields=SHARED_FIELDS,
            distributor_ids=["", distributor.id],
            storage=_MemoryStorage(),
        )

        assert result.success_count == 2
        for item in result.items:
            assert get_access_list(session, ADMIN, ContentKind.DOCUMENTATION, item.content_id) == [distributor.id]
    finally:
        session.close()


def test_sharing_failure_keeps_record_and_counts_as_error() -> None:
    session = _build_session()
    try:
        distributor = Distributor(id=str(uuid.uuid4()), company_name="Alpha")
        session.add(distributor)
        session.execute(
            text(
                "CREATE TRIGGER reject_documentation_sharing BEFORE INSERT ON documentation_distributors "
                "BEGIN SELECT RAISE(IGNORE); END;"
            )
        )
        session.commit()

        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(1),
            shared_fields=SHARED_FIELDS,
            distributor_ids=[distributor.id],
            storage=_MemoryStorage(),
        )

        assert result.error_count == 1
        item = result.items[0]
        assert item.stage == "sharing"
        assert item.content_id is not None
        assert session.get(Documentation, item.content_id) is not None
    finally:
        session.close()


def test_invalid_batches_are_rejected_before_any_upload() -> None:
    session = _build_session()
    storage = _MemoryStorage()
    try:
        empty = run_batch_ingestion(
            session, ADMIN, ContentKind.DOCUMENTATION, [], shared_fields=SHARED_FIELDS, storage=storage
        )
        assert empty.status == "invalid"

        missing_category = run_batch_ingestion(
            session, ADMIN, ContentKind.DOCUMENTATION, _files(2), shared_fields={"language": "English"}, storage=storage
        )
        assert missing_category.status == "invalid"
        assert "category" in missing_category.message
        assert storage.calls == 0
    finally:
        session.close()


def test_unknown_distributor_rejects_batch_before_any_upload() -> None:
    session = _build_session()
    storage = _MemoryStorage()
    try:
        distributor = Distributor(id=str(uuid.uuid4()), company_name="Alpha")
        session.add(distributor)
        session.commit()

        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(3),
            shared_fields=SHARED_FIELDS,
            distributor_ids=[distributor.id, "ghost-distributor"],
            storage=storage,
        )

        assert result.status == "invalid"
        assert "ghost-distributor" in result.message
        assert storage.calls == 0
        assert session.scalars(select(Documentation)).all() == []
    finally:
        session.close()


def test_unexpected_error_in_one_file_does_not_stop_the_others() -> None:
    session = _build_session()
    try:
        result = run_batch_ingestion(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            _files(3),
            shared_fields=SHARED_FIELDS,
            storage=_MemoryStorage(crash_on_calls={2}),
        )

        assert result.status == "partial"
        assert [item.success for item in result.items] == [True, False, True]
        assert result.items[1].stage == "unexpected"
        assert "connection reset by peer" in result.items[1].message
        assert len(session.scalars(select(Documentation)).all()) == 2
    finally:
        session.close()
