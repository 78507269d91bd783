"""SQLAlchemy ORM models for distributor portal content and targeting."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from portal_admin.storage.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Authentication identity."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class AdminUser(Base):
    __tablename__ = "admin_users"

    id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="viewer")
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Distributor(Base):
    __tablename__ = "distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_name: Mapped[str] = mapped_column(String(160), nullable=False)
    territory: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class UserProfile(Base):
    """Generic portal profile; distributor staff carry a distributor_id."""

    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="distributor")
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="active")
    distributor_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_user_profiles_distributor", "distributor_id"),)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_name: Mapped[str] = mapped_column(String(160), nullable=False)
    distributor_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    device_name: Mapped[str] = mapped_column(String(160), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class ContentItemMixin:
    """Columns shared by every distributable content kind."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="draft")
    product: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    format: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class Documentation(ContentItemMixin, Base):
    __tablename__ = "documentation"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    version: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    language: Mapped[str] = mapped_column(String(40), nullable=False, default="English")
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class MarketingAsset(ContentItemMixin, Base):
    __tablename__ = "marketing_assets"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(80), nullable=False)
    language: Mapped[str] = mapped_column(String(40), nullable=False, default="English")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TrainingMaterial(ContentItemMixin, Base):
    __tablename__ = "training_materials"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(80), nullable=False)
    level: Mapped[str] = mapped_column(String(40), nullable=False, default="beginner")
    duration: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    modules: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Announcement(ContentItemMixin, Base):
    __tablename__ = "announcements"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_text: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    link_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    send_notification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class DocumentationDistributor(Base):
    __tablename__ = "documentation_distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    documentation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("documentation.id", ondelete="CASCADE"),
        nullable=False,
    )
    distributor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("documentation_id", "distributor_id", name="uq_documentation_distributors_pair"),
    )


class MarketingAssetDistributor(Base):
    __tablename__ = "marketing_asset_distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    marketing_asset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("marketing_assets.id", ondelete="CASCADE"),
        nullable=False,
    )
    distributor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("marketing_asset_id", "distributor_id", name="uq_marketing_asset_distributors_pair"),
    )


class TrainingMaterialDistributor(Base):
    __tablename__ = "training_material_distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    training_material_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("training_materials.id", ondelete="CASCADE"),
        nullable=False,
    )
    distributor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("training_material_id", "distributor_id", name="uq_training_material_distributors_pair"),
    )


class AnnouncementDistributor(Base):
    __tablename__ = "announcement_distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    announcement_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("announcements.id", ondelete="CASCADE"),
        nullable=False,
    )
    distributor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("announcement_id", "distributor_id", name="uq_announcement_distributors_pair"),
    )


class SoftwareRelease(Base):
    __tablename__ = "software_releases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    version: Mapped[str] = mapped_column(String(40), nullable=False)
    release_type: Mapped[str] = mapped_column(String(24), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    product_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    release_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changelog: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    min_previous_version: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    target_type: Mapped[str] = mapped_column(String(24), nullable=False, default="all")
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notify_on_publish: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="draft")
    release_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("release_type", "version", name="uq_software_releases_type_version"),
        Index("ix_software_releases_status_created_at", "status", "created_at"),
    )


class ReleaseTargetDistributor(Base):
    __tablename__ = "release_target_distributors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("software_releases.id", ondelete="CASCADE"),
        nullable=False,
    )
    distributor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("distributors.id", ondelete="CASCADE"),
        nullable=False,
    )
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("release_id", "distributor_id", name="uq_release_target_distributors_pair"),
    )


class ReleaseTargetDevice(Base):
    __tablename__ = "release_target_devices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("software_releases.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("devices.id", ondelete="CASCADE"),
        nullable=False,
    )
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("release_id", "device_id", name="uq_release_target_devices_pair"),
    )


class ContentTranslation(Base):
    __tablename__ = "content_translations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    content_type: Mapped[str] = mapped_column(String(40), nullable=False)
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    field_name: Mapped[str] = mapped_column(String(80), nullable=False)
    language_code: Mapped[str] = mapped_column(String(8), nullable=False)
    translated_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "content_type",
            "content_id",
            "field_name",
            "language_code",
            name="uq_content_translations_field_language",
        ),
        Index("ix_content_translations_content_language", "content_type", "content_id", "language_code"),
    )
