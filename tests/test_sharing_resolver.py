from __future__ import annotations

from datetime import datetime, timedelta, timezone
import uuid

from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal_admin.auth.jwt import AdminContext
from portal_admin.content.kinds import ContentKind
from portal_admin.sharing.service import (
    NO_SELECTION,
    get_access_list,
    is_shared_with_all,
    is_visible_to,
    list_accessible_content,
    normalize_distributor_ids,
    set_access_list,
    sharing_summary,
    unknown_distributors,
)
from portal_admin.storage.db import Base, load_models
from portal_admin.storage.models import Distributor, Documentation, DocumentationDistributor, MarketingAsset


ADMIN = AdminContext(user_id=str(uuid.uuid4()), email="admin@portal.io", role="admin")


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


def _seed_distributors(session: Session, *names: str) -> list[str]:
    ids = []
    for name in names:
        distributor = Distributor(id=str(uuid.uuid4()), company_name=name)
        session.add(distributor)
        ids.append(distributor.id)
    session.commit()
    return ids


def _seed_document(session: Session, title: str = "User Manual", *, age_minutes: int = 0) -> str:
    document = Documentation(
        id=str(uuid.uuid4()),
        title=title,
        category="manual",
        status="published",
        created_at=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
    )
    session.add(document)
    session.commit()
    return document.id


def _sharing_rows(session: Session, document_id: str) -> list[DocumentationDistributor]:
    return list(
        session.scalars(
            select(DocumentationDistributor).where(DocumentationDistributor.documentation_id == document_id)
        ).all()
    )


def test_new_item_without_rows_is_shared_with_all() -> None:
    session = _build_session()
    try:
        document_id = _seed_document(session)

        assert get_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id) == []
        assert is_shared_with_all(session, ADMIN, ContentKind.DOCUMENTATION, document_id) is True
        summary = sharing_summary(session, ADMIN, ContentKind.DOCUMENTATION, document_id)
        assert summary.label == "All"
        assert summary.is_all is True
    finally:
        session.close()


def test_set_then_get_round_trips_the_allow_list() -> None:
    session = _build_session()
    try:
        alpha, beta, _gamma = _seed_distributors(session, "Alpha", "Beta", "Gamma")
        document_id = _seed_document(session)

        result = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [beta, alpha])

        assert result.success is True
        assert result.status == "restricted"
        assert get_access_list(session, ADMIN, "documentation", document_id) == sorted([alpha, beta])
        summary = sharing_summary(session, ADMIN, "documentation", document_id)
        assert summary.label == "2 Distributors"
        assert summary.count == 2
    finally:
        session.close()


def test_saving_a_list_replaces_the_previous_one() -> None:
    session = _build_session()
    try:
        alpha, beta, gamma = _seed_distributors(session, "Alpha", "Beta", "Gamma")
        document_id = _seed_document(session)

        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [alpha, beta])
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [gamma])

        assert get_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id) == [gamma]
        assert sharing_summary(session, ADMIN, ContentKind.DOCUMENTATION, document_id).label == "1 Distributor"
    finally:
        session.close()


def test_empty_list_after_restriction_leaves_no_rows() -> None:
    session = _build_session()
    try:
        alpha, beta = _seed_distributors(session, "Alpha", "Beta")
        document_id = _seed_document(session)
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [alpha, beta])

        result = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [])

        assert result.success is True
        assert result.status == "public"
        assert _sharing_rows(session, document_id) == []
        assert is_shared_with_all(session, ADMIN, ContentKind.DOCUMENTATION, document_id) is True
    finally:
        session.close()


def test_no_selection_placeholder_is_never_stored() -> None:
    session = _build_session()
    try:
        (alpha,) = _seed_distributors(session, "Alpha")
        document_id = _seed_document(session)

        result = set_access_list(
            session,
            ADMIN,
            ContentKind.DOCUMENTATION,
            document_id,
            [NO_SELECTION, alpha, alpha, None, "  "],
        )

        assert result.success is True
        assert [row.distributor_id for row in _sharing_rows(session, document_id)] == [alpha]

        only_placeholder = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [NO_SELECTION])
        assert only_placeholder.status == "public"
        assert _sharing_rows(session, document_id) == []
    finally:
        session.close()


def test_normalize_distributor_ids_keeps_first_occurrence_order() -> None:
    assert normalize_distributor_ids(["b", "", "a", "b", None, " c "]) == ["b", "a", "c"]
    assert normalize_distributor_ids(None) == []


def test_silent_rejection_rolls_back_and_requires_retry() -> None:
    session = _build_session()
    try:
        alpha, beta, gamma = _seed_distributors(session, "Alpha", "Beta", "Gamma")
        document_id = _seed_document(session)
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [alpha])

        session.execute(
            text(
                "CREATE TRIGGER reject_documentation_sharing BEFORE INSERT ON documentation_distributors "
                "BEGIN SELECT RAISE(IGNORE); END;"
            )
        )
        session.commit()

        result = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [beta, gamma])

        assert result.success is False
        assert result.status == "failed"
        assert result.requires_retry is True
        assert "documentation_distributors" in result.message
        # the delete ran in the same transaction and was rolled back with the inserts
        assert get_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id) == [alpha]
    finally:
        session.close()


def test_unknown_item_and_unknown_distributors_are_rejected() -> None:
    session = _build_session()
    try:
        document_id = _seed_document(session)

        missing = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, str(uuid.uuid4()), [])
        assert missing.status == "not_found"

        unknown = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, ["ghost-distributor"])
        assert unknown.status == "invalid"
        assert "ghost-distributor" in unknown.message
        assert _sharing_rows(session, document_id) == []
    finally:
        session.close()


def test_silently_ignored_delete_keeps_rows_and_requires_retry() -> None:
    session = _build_session()
    try:
        alpha, beta = _seed_distributors(session, "Alpha", "Beta")
        document_id = _seed_document(session)
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [alpha, beta])

        session.execute(
            text(
                "CREATE TRIGGER keep_documentation_sharing BEFORE DELETE ON documentation_distributors "
                "BEGIN SELECT RAISE(IGNORE); END;"
            )
        )
        session.commit()

        result = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [])

        assert result.success is False
        assert result.status == "failed"
        assert result.requires_retry is True
        assert "write_rejected_silently" in result.message
        assert get_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id) == sorted([alpha, beta])
    finally:
        session.close()


def test_failed_existence_read_is_reported_as_retryable_failure() -> None:
    session = _build_session()
    try:
        (alpha,) = _seed_distributors(session, "Alpha")
        document_id = _seed_document(session)
        session.execute(text("DROP TABLE documentation"))
        session.commit()

        result = set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, document_id, [alpha])

        assert result.success is False
        assert result.status == "failed"
        assert result.requires_retry is True
        assert _sharing_rows(session, document_id) == []
    finally:
        session.close()


def test_unknown_distributors_keeps_input_order() -> None:
    session = _build_session()
    try:
        (alpha,) = _seed_distributors(session, "Alpha")

        assert unknown_distributors(session, ["ghost-b", alpha, "ghost-a"]) == ["ghost-b", "ghost-a"]
        assert unknown_distributors(session, []) == []
    finally:
        session.close()


def test_distributor_sees_public_items_and_items_listing_it() -> None:
    session = _build_session()
    try:
        alpha, beta = _seed_distributors(session, "Alpha", "Beta")
        public_id = _seed_document(session, "Public Guide", age_minutes=2)
        alpha_only_id = _seed_document(session, "Alpha Guide", age_minutes=1)
        beta_only_id = _seed_document(session, "Beta Guide")
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, alpha_only_id, [alpha])
        set_access_list(session, ADMIN, ContentKind.DOCUMENTATION, beta_only_id, [beta])

        visible = list_accessible_content(session, ContentKind.DOCUMENTATION, alpha)

        assert [item.id for item in visible] == [alpha_only_id, public_id]
        assert is_visible_to(session, ContentKind.DOCUMENTATION, public_id, beta) is True
        assert is_visible_to(session, ContentKind.DOCUMENTATION, alpha_only_id, beta) is False
        assert is_visible_to(session, ContentKind.DOCUMENTATION, beta_only_id, beta) is True
    finally:
        session.close()


def test_sharing_tables_are_separate_per_kind() -> None:
    session = _build_session()
    try:
        (alpha,) = _seed_distributors(session, "Alpha")
        asset = MarketingAsset(id=str(uuid.uuid4()), name="Brochure", type="brochure")
        session.add(asset)
        session.commit()

        result = set_access_list(session, ADMIN, ContentKind.MARKETING_ASSET, asset.id, [alpha])

        assert result.success is True
        assert get_access_list(session, ADMIN, ContentKind.MARKETING_ASSET, asset.id) == [alpha]
        assert session.scalars(select(DocumentationDistributor)).all() == []
    finally:
        session.close()
