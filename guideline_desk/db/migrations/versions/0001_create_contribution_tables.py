"""Create contribution tables

Revision ID: 0001_contributions
Revises:
Create Date: 2026-10-19

Creates the contributions ledger, the review outbox and the audit log.
Published guidelines are unique per (topic, category, slug) through a
partial unique index.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_contributions"
down_revision = None
branch_labels = None
depends_on = None

CONTRIBUTION_STATUSES = (
    "pending",
    "automated_pass",
    "automated_needs_changes",
    "automated_reject",
    "moderator_needs_changes",
    "published",
    "rejected",
    "withdrawn",
)

OUTBOX_STATUSES = ("queued", "processing", "done", "failed", "dead")

PUBLISHED_ONLY = sa.text("status = 'published'")


def upgrade() -> None:
    op.create_table(
        "contributions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "status",
            sa.Enum(*CONTRIBUTION_STATUSES, name="contribution_status"),
            nullable=False,
        ),
        sa.Column("owner", sa.String(length=128), nullable=False),
        # Classification triple
        sa.Column("topic", sa.String(length=100), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("content_key", sa.String(length=255), nullable=False),
        sa.Column("automated_review", sa.JSON, nullable=True),
        sa.Column("moderator_decision", sa.JSON, nullable=True),
        sa.Column("published_location", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_contributions_status", "contributions", ["status"])
    op.create_index("ix_contributions_owner", "contributions", ["owner"])
    op.create_index(
        "ix_contributions_owner_created", "contributions", ["owner", "created_at"]
    )
    op.create_index(
        "ix_contributions_status_created", "contributions", ["status", "created_at"]
    )
    op.create_index(
        "ix_contributions_triple", "contributions", ["topic", "category", "slug"]
    )
    op.create_index(
        "uq_contributions_published_triple",
        "contributions",
        ["topic", "category", "slug"],
        unique=True,
        sqlite_where=PUBLISHED_ONLY,
        postgresql_where=PUBLISHED_ONLY,
    )

    op.create_table(
        "review_outbox",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("contribution_id", sa.String(length=64), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*OUTBOX_STATUSES, name="review_outbox_status"),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("claimed_by", sa.String(length=64), nullable=True),
        sa.Column(
            "enqueued_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_review_outbox_contribution_id", "review_outbox", ["contribution_id"]
    )
    op.create_index("ix_review_outbox_status", "review_outbox", ["status"])
    op.create_index(
        "ix_review_outbox_status_enqueued", "review_outbox", ["status", "enqueued_at"]
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "ts",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "actor_kind",
            sa.Enum("human", "agent", "system", name="audit_actor_kind"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column(
            "action",
            sa.Enum(
                "created", "revised", "status_changed", "review_requested",
                name="audit_action",
            ),
            nullable=False,
        ),
        sa.Column("entity_kind", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
    )
    op.create_index("ix_audit_log_ts", "audit_log", ["ts"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_entity_kind", "audit_log", ["entity_kind"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_actor", "audit_log", ["actor_kind", "actor_id"])
    op.create_index(
        "ix_audit_log_entity_ts", "audit_log", ["entity_kind", "entity_id", "ts"]
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("review_outbox")
    op.drop_table("contributions")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "audit_action",
            "audit_actor_kind",
            "review_outbox_status",
            "contribution_status",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
