"""initial_schema

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-09-02 10:14:07.318442

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2e7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "content_types",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
    )

    op.create_table(
        "content_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type_key", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["type_key"], ["content_types.key"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_items_type_key", "content_items", ["type_key"])

    op.create_table(
        "content_type_versions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("version_hash", sa.String(length=64), nullable=False),
        sa.Column("type_key", sa.String(length=255), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("change_source", sa.String(length=10), nullable=False),
        sa.Column("author", sa.String(length=255), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("version_hash"),
    )
    op.create_index(
        "ix_content_type_versions_type_key", "content_type_versions", ["type_key"]
    )
    op.create_index(
        "ix_versions_type_created", "content_type_versions", ["type_key", "created_at"]
    )

    op.create_table(
        "version_parents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("child_hash", sa.String(length=64), nullable=False),
        sa.Column("parent_hash", sa.String(length=64), nullable=False),
        sa.Column("parent_order", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["child_hash"],
            ["content_type_versions.version_hash"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["parent_hash"], ["content_type_versions.version_hash"]
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("child_hash", "parent_hash", name="uq_version_parent"),
    )
    op.create_index("ix_version_parents_child_hash", "version_parents", ["child_hash"])
    op.create_index(
        "ix_version_parents_parent_hash", "version_parents", ["parent_hash"]
    )

    op.create_table(
        "sync_states",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type_key", sa.String(length=255), nullable=False),
        sa.Column("local_hash", sa.String(length=64), nullable=True),
        sa.Column("remote_hash", sa.String(length=64), nullable=True),
        sa.Column("last_synced_hash", sa.String(length=64), nullable=True),
        sa.Column("sync_status", sa.String(length=20), nullable=False),
        sa.Column("conflict_status", sa.String(length=20), nullable=False),
        sa.Column("sync_progress", sa.JSON(), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("last_conflict_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("type_key"),
    )
    op.create_index("ix_sync_states_sync_status", "sync_states", ["sync_status"])
    op.create_index(
        "ix_sync_states_conflict_status", "sync_states", ["conflict_status"]
    )

    op.create_table(
        "conflicts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("type_key", sa.String(length=255), nullable=False),
        sa.Column("conflict_type", sa.String(length=30), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False),
        sa.Column("priority", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("local_hash", sa.String(length=64), nullable=True),
        sa.Column("remote_hash", sa.String(length=64), nullable=True),
        sa.Column("ancestor_hash", sa.String(length=64), nullable=True),
        sa.Column("source_changes", sa.JSON(), nullable=False),
        sa.Column("target_changes", sa.JSON(), nullable=False),
        sa.Column("conflicting_fields", sa.JSON(), nullable=False),
        sa.Column("dependent_items", sa.Integer(), nullable=False),
        sa.Column("resolution", sa.String(length=20), nullable=True),
        sa.Column("resolved_by", sa.String(length=255), nullable=True),
        sa.Column("resolved_hash", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_conflicts_type_key", "conflicts", ["type_key"])
    op.create_index("ix_conflicts_priority", "conflicts", ["priority"])
    op.create_index("ix_conflicts_status", "conflicts", ["status"])

    op.create_table(
        "deployments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("type_keys", sa.JSON(), nullable=True),
        sa.Column("progress", sa.JSON(), nullable=True),
        sa.Column("logs", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deployments_status", "deployments", ["status"])

    op.create_table(
        "sync_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deployment_id", sa.String(length=36), nullable=True),
        sa.Column("type_key", sa.String(length=255), nullable=False),
        sa.Column("version_hash", sa.String(length=64), nullable=True),
        sa.Column("target_platform", sa.String(length=100), nullable=False),
        sa.Column("sync_direction", sa.String(length=10), nullable=False),
        sa.Column("sync_status", sa.String(length=20), nullable=False),
        sa.Column("pushed_data", sa.JSON(), nullable=True),
        sa.Column("response_data", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["deployment_id"], ["deployments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sync_history_deployment_id", "sync_history", ["deployment_id"]
    )
    op.create_index("ix_sync_history_type_key", "sync_history", ["type_key"])
    op.create_index("ix_sync_history_sync_status", "sync_history", ["sync_status"])


def downgrade() -> None:
    op.drop_index("ix_sync_history_sync_status", table_name="sync_history")
    op.drop_index("ix_sync_history_type_key", table_name="sync_history")
    op.drop_index("ix_sync_history_deployment_id", table_name="sync_history")
    op.drop_table("sync_history")

    op.drop_index("ix_deployments_status", table_name="deployments")
    op.drop_table("deployments")

    op.drop_index("ix_conflicts_status", table_name="conflicts")
    op.drop_index("ix_conflicts_priority", table_name="conflicts")
    op.drop_index("ix_conflicts_type_key", table_name="conflicts")
    op.drop_table("conflicts")

    op.drop_index("ix_sync_states_conflict_status", table_name="sync_states")
    op.drop_index("ix_sync_states_sync_status", table_name="sync_states")
    op.drop_table("sync_states")

    op.drop_index("ix_version_parents_parent_hash", table_name="version_parents")
    op.drop_index("ix_version_parents_child_hash", table_name="version_parents")
    op.drop_table("version_parents")

    op.drop_index("ix_versions_type_created", table_name="content_type_versions")
    op.drop_index(
        "ix_content_type_versions_type_key", table_name="content_type_versions"
    )
    op.drop_table("content_type_versions")

    op.drop_index("ix_content_items_type_key", table_name="content_items")
    op.drop_table("content_items")

    op.drop_table("content_types")
