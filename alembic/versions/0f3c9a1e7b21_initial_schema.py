"""Initial Depthcaster schema

Revision ID: 0f3c9a1e7b21
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0f3c9a1e7b21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("fid", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(100)),
        sa.Column("display_name", sa.String(200)),
        sa.Column("pfp_url", sa.Text()),
        sa.Column("signer_uuid", sa.String(64)),
        sa.Column("preferences", postgresql.JSONB()),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_users_username", "users", ["username"])
    op.create_index("ix_users_signer_uuid", "users", ["signer_uuid"])

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_fid", sa.BigInteger(), sa.ForeignKey("users.fid", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_fid", "role", name="uq_user_roles_user_role"),
    )
    op.create_index("ix_user_roles_user_fid", "user_roles", ["user_fid"])

    op.create_table(
        "curated_casts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cast_hash", sa.String(66), nullable=False, unique=True),
        sa.Column("cast_data", postgresql.JSONB(), nullable=False),
        sa.Column("cast_created_at", sa.DateTime(timezone=True)),
        sa.Column("curator_fid", sa.BigInteger(), sa.ForeignKey("users.fid")),
        sa.Column("cast_text", sa.Text()),
        sa.Column("cast_text_length", sa.Integer(), server_default="0"),
        sa.Column("author_fid", sa.BigInteger(), sa.ForeignKey("users.fid", ondelete="SET NULL")),
        sa.Column("likes_count", sa.Integer(), server_default="0"),
        sa.Column("recasts_count", sa.Integer(), server_default="0"),
        sa.Column("replies_count", sa.Integer(), server_default="0"),
        sa.Column("engagement_score", sa.Integer(), server_default="0"),
        sa.Column("parent_hash", sa.String(66)),
        sa.Column("quality_score", sa.Integer()),
        sa.Column("category", sa.String(40)),
        sa.Column("quality_analyzed_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index("ix_curated_casts_created_at_id", "curated_casts", ["created_at", "id"])
    op.create_index("ix_curated_casts_author_fid", "curated_casts", ["author_fid"])
    op.create_index("ix_curated_casts_quality_category", "curated_casts", ["quality_score", "category"])
    op.create_index("ix_curated_casts_parent_hash", "curated_casts", ["parent_hash"])

    op.create_table(
        "curator_cast_curations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "cast_hash", sa.String(66),
            sa.ForeignKey("curated_casts.cast_hash", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("curator_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("cast_hash", "curator_fid", name="uq_curations_cast_curator"),
    )
    op.create_index("ix_curations_curator_created", "curator_cast_curations", ["curator_fid", "created_at"])

    op.create_table(
        "collections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200)),
        sa.Column("description", sa.Text()),
        sa.Column("creator_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        sa.Column("access_type", sa.String(20), nullable=False, server_default="open"),
        sa.Column("gated_user_id", sa.BigInteger(), sa.ForeignKey("users.fid")),
        sa.Column("gating_rule", postgresql.JSONB()),
        sa.Column("display_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("order_mode", sa.String(10), nullable=False, server_default="manual"),
        sa.Column("order_direction", sa.String(4), nullable=False, server_default="desc"),
        _created_at(),
        _created_at("updated_at"),
    )

    op.create_table(
        "collection_casts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "collection_id", sa.Integer(),
            sa.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "cast_hash", sa.String(66),
            sa.ForeignKey("curated_casts.cast_hash", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("curator_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        sa.Column("order", sa.Integer()),
        _created_at(),
        sa.UniqueConstraint("collection_id", "cast_hash", name="uq_collection_casts_collection_cast"),
    )
    op.create_index("ix_collection_casts_collection_order", "collection_casts", ["collection_id", "order"])

    op.create_table(
        "curator_packs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("creator_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        sa.Column("is_public", sa.Boolean(), server_default=sa.true()),
        sa.Column("usage_count", sa.Integer(), server_default="0"),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_curator_packs_creator_fid", "curator_packs", ["creator_fid"])

    for table, unique_name in (
        ("curator_pack_users", "uq_pack_users_pack_user"),
        ("user_pack_subscriptions", "uq_pack_subscriptions_user_pack"),
        ("pack_favorites", "uq_pack_favorites_user_pack"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "pack_id", sa.Integer(),
                sa.ForeignKey("curator_packs.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("user_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
            _created_at("added_at" if table == "curator_pack_users" else "created_at"),
            sa.UniqueConstraint("pack_id", "user_fid", name=unique_name),
        )

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("cast_hash", sa.String(66), nullable=False),
        sa.Column("cast_data", postgresql.JSONB(), nullable=False),
        sa.Column("author_fid", sa.BigInteger(), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint("user_fid", "cast_hash", "type", name="uq_notifications_user_cast_type"),
    )
    op.create_index(
        "ix_notifications_user_read_created", "user_notifications", ["user_fid", "is_read", "created_at"]
    )

    op.create_table(
        "miniapp_installations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_fid", sa.BigInteger(),
            sa.ForeignKey("users.fid", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        _created_at("installed_at"),
    )

    op.create_table(
        "miniapp_notification_queue",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_fid", sa.BigInteger(),
            sa.ForeignKey("users.fid", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("cast_hash", sa.String(66), nullable=False),
        sa.Column("cast_data", postgresql.JSONB(), nullable=False),
        sa.Column("notification_type", sa.String(40), nullable=False, server_default="new_curated_cast"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index(
        "ix_miniapp_queue_user_scheduled", "miniapp_notification_queue", ["user_fid", "scheduled_for"]
    )
    op.create_index("ix_miniapp_queue_sent_at", "miniapp_notification_queue", ["sent_at"])

    op.create_table(
        "cast_tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cast_hash", sa.String(66), nullable=False),
        sa.Column("tag", sa.String(50), nullable=False),
        sa.Column("admin_fid", sa.BigInteger(), sa.ForeignKey("users.fid"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("cast_hash", "tag", name="uq_cast_tags_cast_tag"),
    )
    op.create_index("ix_cast_tags_tag", "cast_tags", ["tag"])

    op.create_table(
        "admin_rate_limit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("admin_fid", sa.BigInteger(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_admin_rate_limit_events_fid_ts", "admin_rate_limit_events", ["admin_fid", "timestamp"]
    )


def downgrade() -> None:
    for table in (
        "admin_rate_limit_events",
        "cast_tags",
        "miniapp_notification_queue",
        "miniapp_installations",
        "user_notifications",
        "pack_favorites",
        "user_pack_subscriptions",
        "curator_pack_users",
        "curator_packs",
        "collection_casts",
        "collections",
        "curator_cast_curations",
        "curated_casts",
        "user_roles",
        "users",
    ):
        op.drop_table(table)
