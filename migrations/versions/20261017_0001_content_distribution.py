"""content distribution core: directory, content kinds, sharing, releases, translations

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


CONTENT_TABLES = ["documentation", "marketing_assets", "training_materials", "announcements"]

SHARING_TABLES = {
    "documentation_distributors": ("documentation_id", "documentation"),
    "marketing_asset_distributors": ("marketing_asset_id", "marketing_assets"),
    "training_material_distributors": ("training_material_id", "training_materials"),
    "announcement_distributors": ("announcement_id", "announcements"),
}

RELEASE_TABLES = ["software_releases", "release_target_distributors", "release_target_devices"]

ADMIN_WRITE_TABLES = CONTENT_TABLES + list(SHARING_TABLES) + RELEASE_TABLES + ["content_translations"]


def _is_postgresql() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _content_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="draft"),
        sa.Column("product", sa.String(length=255), nullable=True),
        sa.Column("file_url", sa.String(length=500), nullable=True),
        sa.Column("file_path", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("format", sa.String(length=16), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "admin_users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="viewer"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="active"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "distributors",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("company_name", sa.String(length=160), nullable=False),
        sa.Column("territory", sa.String(length=120), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=160), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="distributor"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="active"),
        sa.Column("distributor_id", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_distributor", "user_profiles", ["distributor_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("company_name", sa.String(length=160), nullable=False),
        sa.Column("distributor_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "devices",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("device_name", sa.String(length=160), nullable=False),
        sa.Column("serial_number", sa.String(length=80), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("serial_number"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "documentation",
        *_content_columns(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False),
        sa.Column("version", sa.String(length=40), nullable=True),
        sa.Column("language", sa.String(length=40), nullable=False, server_default="English"),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "marketing_assets",
        *_content_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=80), nullable=False),
        sa.Column("language", sa.String(length=40), nullable=False, server_default="English"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "training_materials",
        *_content_columns(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=80), nullable=False),
        sa.Column("level", sa.String(length=40), nullable=False, server_default="beginner"),
        sa.Column("duration", sa.String(length=40), nullable=True),
        sa.Column("modules", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("video_url", sa.String(length=500), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "announcements",
        *_content_columns(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("link_text", sa.String(length=120), nullable=True),
        sa.Column("link_url", sa.String(length=500), nullable=True),
        sa.Column("send_notification", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    for table_name in CONTENT_TABLES:
        op.create_index(f"ix_{table_name}_status_created_at", table_name, ["status", "created_at"], unique=False)

    for table_name, (content_column, content_table) in SHARING_TABLES.items():
        op.create_table(
            table_name,
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column(content_column, sa.String(length=36), nullable=False),
            sa.Column("distributor_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint([content_column], [f"{content_table}.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(content_column, "distributor_id", name=f"uq_{table_name}_pair"),
        )
        op.create_index(f"ix_{table_name}_distributor", table_name, ["distributor_id"], unique=False)

    op.create_table(
        "software_releases",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("version", sa.String(length=40), nullable=False),
        sa.Column("release_type", sa.String(length=24), nullable=False),
        sa.Column("product_id", sa.String(length=36), nullable=True),
        sa.Column("product_name", sa.String(length=160), nullable=True),
        sa.Column("file_url", sa.String(length=500), nullable=False),
        sa.Column("file_path", sa.String(length=255), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("checksum", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("release_notes", sa.Text(), nullable=True),
        sa.Column("changelog", sa.Text(), nullable=True),
        sa.Column("min_previous_version", sa.String(length=40), nullable=True),
        sa.Column("target_type", sa.String(length=24), nullable=False, server_default="all"),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notify_on_publish", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="draft"),
        sa.Column("release_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("release_type", "version", name="uq_software_releases_type_version"),
    )
    op.create_index(
        "ix_software_releases_status_created_at",
        "software_releases",
        ["status", "created_at"],
        unique=False,
    )

    op.create_table(
        "release_target_distributors",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("release_id", sa.String(length=36), nullable=False),
        sa.Column("distributor_id", sa.String(length=36), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["release_id"], ["software_releases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("release_id", "distributor_id", name="uq_release_target_distributors_pair"),
    )
    op.create_table(
        "release_target_devices",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("release_id", sa.String(length=36), nullable=False),
        sa.Column("device_id", sa.String(length=36), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["release_id"], ["software_releases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("release_id", "device_id", name="uq_release_target_devices_pair"),
    )

    op.create_table(
        "content_translations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("content_type", sa.String(length=40), nullable=False),
        sa.Column("content_id", sa.String(length=36), nullable=False),
        sa.Column("field_name", sa.String(length=80), nullable=False),
        sa.Column("language_code", sa.String(length=8), nullable=False),
        sa.Column("translated_text", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "content_type",
            "content_id",
            "field_name",
            "language_code",
            name="uq_content_translations_field_language",
        ),
    )
    op.create_index(
        "ix_content_translations_content_language",
        "content_translations",
        ["content_type", "content_id", "language_code"],
        unique=False,
    )

    if _is_postgresql():
        op.execute(
            """
            CREATE OR REPLACE FUNCTION app_current_admin_id()
            RETURNS text
            LANGUAGE sql
            STABLE
            AS $$
                SELECT NULLIF(current_setting('app.current_admin_id', true), '');
            $$;
            """
        )
        op.execute(
            """
            CREATE OR REPLACE FUNCTION app_current_is_admin()
            RETURNS boolean
            LANGUAGE sql
            STABLE
            SECURITY DEFINER
            AS $$
                SELECT EXISTS (
                    SELECT 1 FROM admin_users
                    WHERE id = app_current_admin_id() AND status = 'active'
                );
            $$;
            """
        )

        # Rejected writes affect zero rows without raising; callers verify row counts.
        for table_name in ADMIN_WRITE_TABLES:
            op.execute(f"ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY;")
            op.execute(f"ALTER TABLE {table_name} FORCE ROW LEVEL SECURITY;")
            op.execute(
                f"""
                CREATE POLICY {table_name}_select_policy ON {table_name}
                FOR SELECT USING (true);
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_insert_policy ON {table_name}
                FOR INSERT WITH CHECK (app_current_is_admin());
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_update_policy ON {table_name}
                FOR UPDATE USING (app_current_is_admin())
                WITH CHECK (app_current_is_admin());
                """
            )
            op.execute(
                f"""
                CREATE POLICY {table_name}_delete_policy ON {table_name}
                FOR DELETE USING (app_current_is_admin());
                """
            )


def downgrade() -> None:
    if _is_postgresql():
        for table_name in ADMIN_WRITE_TABLES:
            op.execute(f"DROP POLICY IF EXISTS {table_name}_select_policy ON {table_name};")
            op.execute(f"DROP POLICY IF EXISTS {table_name}_insert_policy ON {table_name};")
            op.execute(f"DROP POLICY IF EXISTS {table_name}_update_policy ON {table_name};")
            op.execute(f"DROP POLICY IF EXISTS {table_name}_delete_policy ON {table_name};")
        op.execute("DROP FUNCTION IF EXISTS app_current_is_admin;")
        op.execute("DROP FUNCTION IF EXISTS app_current_admin_id;")

    op.drop_index("ix_content_translations_content_language", table_name="content_translations")
    op.drop_table("content_translations")

    op.drop_table("release_target_devices")
    op.drop_table("release_target_distributors")
    op.drop_index("ix_software_releases_status_created_at", table_name="software_releases")
    op.drop_table("software_releases")

    for table_name in SHARING_TABLES:
        op.drop_index(f"ix_{table_name}_distributor", table_name=table_name)
        op.drop_table(table_name)

    for table_name in reversed(CONTENT_TABLES):
        op.drop_index(f"ix_{table_name}_status_created_at", table_name=table_name)
        op.drop_table(table_name)

    op.drop_table("products")
    op.drop_table("devices")
    op.drop_table("customers")
    op.drop_index("ix_user_profiles_distributor", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("distributors")
    op.drop_table("admin_users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
