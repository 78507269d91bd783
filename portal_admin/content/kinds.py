"""Content kinds that share the distributor sharing mechanism."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from portal_admin.storage.models import (
    Announcement,
    AnnouncementDistributor,
    Documentation,
    DocumentationDistributor,
    MarketingAsset,
    MarketingAssetDistributor,
    TrainingMaterial,
    TrainingMaterialDistributor,
)


CONTENT_STATUSES = ("draft", "published", "archived")


class ContentKind(str, Enum):
    DOCUMENTATION = "documentation"
    MARKETING_ASSET = "marketing_asset"
    TRAINING_MATERIAL = "training_material"
    ANNOUNCEMENT = "announcement"


@dataclass(frozen=True)
class ContentKindSpec:
    kind: ContentKind
    model: Any
    sharing_model: Any
    sharing_column: str
    bucket: str
    title_field: str
    category_field: str
    language_field: Optional[str] = None

    @property
    def sharing_table(self) -> str:
        return self.sharing_model.__tablename__

    def sharing_id_attr(self) -> Any:
        return getattr(self.sharing_model, self.sharing_column)


CONTENT_KINDS: dict[ContentKind, ContentKindSpec] = {
    ContentKind.DOCUMENTATION: ContentKindSpec(
        kind=ContentKind.DOCUMENTATION,
        model=Documentation,
        sharing_model=DocumentationDistributor,
        sharing_column="documentation_id",
        bucket="documentation",
        title_field="title",
        category_field="category",
        language_field="language",
    ),
    ContentKind.MARKETING_ASSET: ContentKindSpec(
        kind=ContentKind.MARKETING_ASSET,
        model=MarketingAsset,
        sharing_model=MarketingAssetDistributor,
        sharing_column="marketing_asset_id",
        bucket="marketing-assets",
        title_field="name",
        category_field="type",
        language_field="language",
    ),
    ContentKind.TRAINING_MATERIAL: ContentKindSpec(
        kind=ContentKind.TRAINING_MATERIAL,
        model=TrainingMaterial,
        sharing_model=TrainingMaterialDistributor,
        sharing_column="training_material_id",
        bucket="training-resources",
        title_field="title",
        category_field="type",
    ),
    ContentKind.ANNOUNCEMENT: ContentKindSpec(
        kind=ContentKind.ANNOUNCEMENT,
        model=Announcement,
        sharing_model=AnnouncementDistributor,
        sharing_column="announcement_id",
        bucket="announcements",
        title_field="title",
        category_field="category",
    ),
}


def get_kind_spec(kind: ContentKind | str) -> ContentKindSpec:
    try:
        return CONTENT_KINDS[ContentKind(kind)]
    except ValueError as exc:
        raise ValueError(f"unknown_content_kind kind={kind}") from exc
