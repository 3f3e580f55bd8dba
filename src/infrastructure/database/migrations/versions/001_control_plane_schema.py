"""Control-plane schema: projects, project services, provisioning steps, API keys.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
    op.execute("CREATE SCHEMA IF NOT EXISTS control_plane")

    op.create_table(
        "projects",
        sa.Column(
            "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("environment", sa.String(20), nullable=False, server_default="dev"),
        sa.Column("status", sa.String(20), nullable=False, server_default="created"),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("slug", name="uq_projects_slug"),
        sa.CheckConstraint(
            "status IN ('created', 'active', 'suspended', 'archived', 'deleted')",
            name="ck_projects_status",
        ),
        sa.CheckConstraint(
            "environment IN ('dev', 'staging', 'prod')",
            name="ck_projects_environment",
        ),
        schema="public",
    )
    op.create_index("ix_projects_status", "projects", ["status"], schema="public")
    op.create_index("ix_projects_tenant_id", "projects", ["tenant_id"], schema="public")

    op.create_table(
        "project_services",
        sa.Column(
            "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("public.projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("service_type", sa.String(50), nullable=False),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("project_id", "service_type", name="uq_project_services_project_service"),
        sa.CheckConstraint(
            "service_type IN ('auth', 'realtime', 'storage', 'graphql')",
            name="ck_project_services_service_type",
        ),
        schema="public",
    )

    op.create_table(
        "provisioning_steps",
        sa.Column(
            "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("public.projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("error_details", JSONB, nullable=True),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
        sa.UniqueConstraint(
            "project_id", "step_name", name="provisioning_steps_project_id_step_name_unique"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'success', 'failed', 'skipped')",
            name="check_provisioning_step_status",
        ),
        sa.CheckConstraint("retry_count >= 0", name="check_provisioning_step_retry_count"),
        schema="control_plane",
    )
    op.create_index(
        "idx_provisioning_steps_project_id", "provisioning_steps", ["project_id"], schema="control_plane"
    )
    op.create_index(
        "idx_provisioning_steps_status", "provisioning_steps", ["status"], schema="control_plane"
    )
    op.create_index(
        "idx_provisioning_steps_project_id_status",
        "provisioning_steps",
        ["project_id", "status"],
        schema="control_plane",
    )
    op.create_index(
        "idx_provisioning_steps_started_at", "provisioning_steps", ["started_at"], schema="control_plane"
    )

    op.create_table(
        "api_keys",
        sa.Column(
            "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("public.projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key_type", sa.String(20), nullable=False),
        sa.Column("key_prefix", sa.String(32), nullable=False),
        sa.Column("key_hash", sa.Text, nullable=False),
        sa.Column("scopes", ARRAY(sa.String(50)), nullable=False, server_default=sa.text("'{}'")),
        _created_at(),
        sa.CheckConstraint(
            "key_type IN ('public', 'secret', 'service_role')",
            name="check_api_keys_key_type",
        ),
        schema="control_plane",
    )
    op.create_index("idx_api_keys_project_id", "api_keys", ["project_id"], schema="control_plane")
    op.create_index("idx_api_keys_key_prefix", "api_keys", ["key_prefix"], schema="control_plane")


def downgrade() -> None:
    op.drop_table("api_keys", schema="control_plane")
    op.drop_table("provisioning_steps", schema="control_plane")
    op.drop_table("project_services", schema="public")
    op.drop_table("projects", schema="public")
