"""
SQLAlchemy 2.0+ ORM models for the provisioning control plane.

Schema layout
-------------
* **public** schema
    - ``projects``          -- one row per project (owned by the project API)
    - ``project_services``  -- which platform services a project enables
* **control_plane** schema
    - ``provisioning_steps`` -- one row per ``(project_id, step_name)``
    - ``api_keys``           -- hashed project API keys
* **tenant_{slug}** schemas are created by raw DDL in
  :mod:`infrastructure.database.tenant_schema_manager`, not mapped here.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

CONTROL_PLANE_SCHEMA = "control_plane"


class Base(DeclarativeBase):
    """Shared declarative base for every ORM model."""
    pass


# ---------------------------------------------------------------------------
# PUBLIC SCHEMA -- ProjectModel
# ---------------------------------------------------------------------------

class ProjectModel(Base):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("slug", name="uq_projects_slug"),
        Index("ix_projects_status", "status"),
        Index("ix_projects_tenant_id", "tenant_id"),
        CheckConstraint(
            "status IN ('created', 'active', 'suspended', 'archived', 'deleted')",
            name="ck_projects_status",
        ),
        CheckConstraint(
            "environment IN ('dev', 'staging', 'prod')",
            name="ck_projects_environment",
        ),
        {"schema": "public"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    environment: Mapped[str] = mapped_column(
        String(20), nullable=False, default="dev", server_default="dev"
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="created", server_default="created"
    )
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb")
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
        onupdate=func.now(),
    )

    services: Mapped[List["ProjectServiceModel"]] = relationship(
        back_populates="project", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id!r}, slug={self.slug!r}, status={self.status!r})>"


class ProjectServiceModel(Base):
    __tablename__ = "project_services"
    __table_args__ = (
        UniqueConstraint("project_id", "service_type", name="uq_project_services_project_service"),
        CheckConstraint(
            "service_type IN ('auth', 'realtime', 'storage', 'graphql')",
            name="ck_project_services_service_type",
        ),
        {"schema": "public"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public.projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    project: Mapped["ProjectModel"] = relationship(back_populates="services")


# ---------------------------------------------------------------------------
# CONTROL_PLANE SCHEMA -- ProvisioningStepModel
# ---------------------------------------------------------------------------

class ProvisioningStepModel(Base):
    """Progress of one provisioning step for one project.

    Rows are created lazily on the first RUNNING transition and upserted
    on ``(project_id, step_name)`` afterwards.
    """

    __tablename__ = "provisioning_steps"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "step_name",
            name="provisioning_steps_project_id_step_name_unique",
        ),
        CheckConstraint(
            "status IN ('pending', 'running', 'success', 'failed', 'skipped')",
            name="check_provisioning_step_status",
        ),
        CheckConstraint("retry_count >= 0", name="check_provisioning_step_retry_count"),
        Index("idx_provisioning_steps_project_id", "project_id"),
        Index("idx_provisioning_steps_status", "status"),
        Index("idx_provisioning_steps_project_id_status", "project_id", "status"),
        Index("idx_provisioning_steps_started_at", "started_at"),
        {"schema": CONTROL_PLANE_SCHEMA},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public.projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending"
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_details: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ProvisioningStep(project_id={self.project_id!r}, "
            f"step={self.step_name!r}, status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# CONTROL_PLANE SCHEMA -- ApiKeyModel
# ---------------------------------------------------------------------------

class ApiKeyModel(Base):
    """Hashed API key. The plaintext is never stored."""

    __tablename__ = "api_keys"
    __table_args__ = (
        Index("idx_api_keys_project_id", "project_id"),
        Index("idx_api_keys_key_prefix", "key_prefix"),
        CheckConstraint(
            "key_type IN ('public', 'secret', 'service_role')",
            name="check_api_keys_key_type",
        ),
        {"schema": CONTROL_PLANE_SCHEMA},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public.projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    key_type: Mapped[str] = mapped_column(String(20), nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(32), nullable=False)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    scopes: Mapped[List[str]] = mapped_column(
        ARRAY(String(50)), nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ApiKey(project_id={self.project_id!r}, type={self.key_type!r})>"
