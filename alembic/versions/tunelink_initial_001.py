"""links, releases and visits

Revision ID: tunelink_initial_001
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "tunelink_initial_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "links",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("destination_url", sa.Text(), nullable=False),
        sa.Column("music_links", sa.JSON(), nullable=True),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_links_slug", "links", ["slug"], unique=True)

    op.create_table(
        "releases",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("artist_name", sa.String(255), nullable=True),
        sa.Column("release_name", sa.String(255), nullable=True),
        sa.Column("release_type", sa.String(20), nullable=True),
        sa.Column("artwork_url", sa.Text(), nullable=True),
        sa.Column("music_links", sa.JSON(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_releases_slug", "releases", ["slug"], unique=True)

    op.create_table(
        "visits",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("parent_id", sa.String(32), nullable=False),
        sa.Column("parent_type", sa.String(10), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("enrichment_status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("enrichment_attempts", sa.Integer(), nullable=False, server_default="0"),
        # raw inputs
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("page_url", sa.Text(), nullable=True),
        sa.Column("target_url", sa.Text(), nullable=True),
        # device
        sa.Column("device_class", sa.String(20), nullable=True),
        sa.Column("device_model", sa.String(50), nullable=True),
        sa.Column("browser", sa.String(50), nullable=True),
        sa.Column("os", sa.String(50), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=True),
        sa.Column("bot_label", sa.String(100), nullable=True),
        # geo
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("country_code", sa.String(8), nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        # attribution
        sa.Column("social_source", sa.Text(), nullable=True),
        sa.Column("utm_source", sa.Text(), nullable=True),
        sa.Column("utm_medium", sa.Text(), nullable=True),
        sa.Column("utm_campaign", sa.Text(), nullable=True),
        sa.Column("utm_content", sa.Text(), nullable=True),
        sa.Column("utm_term", sa.Text(), nullable=True),
        sa.Column("click_id", sa.Text(), nullable=True),
        sa.Column("click_id_param", sa.String(20), nullable=True),
        # interaction
        sa.Column("platform", sa.Text(), nullable=True),
        sa.Column("button_label", sa.Text(), nullable=True),
    )
    op.create_index("ix_visits_parent_timestamp", "visits", ["parent_type", "parent_id", "timestamp"])
    op.create_index("ix_visits_enrichment", "visits", ["enrichment_status", "country_code"])


def downgrade() -> None:
    op.drop_index("ix_visits_enrichment")
    op.drop_index("ix_visits_parent_timestamp")
    op.drop_table("visits")
    op.drop_index("ix_releases_slug")
    op.drop_table("releases")
    op.drop_index("ix_links_slug")
    op.drop_table("links")
