"""
SQLAlchemy implementations of the provisioning store ports.

Every repository method opens and commits its own :class:`AsyncSession`,
so no session is ever held across a handler's outbound HTTP call. The
:class:`SqlProvisioningStore` facade bundles the repositories with the
tenant DDL manager, a connectivity ping and a per-step advisory lock.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from domain.models.api_key import ApiKey, ApiKeyType
from domain.models.project import Environment, Project, ProjectService, ProjectStatus, ServiceType
from domain.models.provisioning import ErrorDetails, ProvisioningStep, StepStatus

from .models import ApiKeyModel, ProjectModel, ProvisioningStepModel
from .tenant_schema_manager import AsyncTenantSchemaManager


def _to_project(row: ProjectModel) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        slug=row.slug,
        tenant_id=row.tenant_id,
        environment=Environment(row.environment or "dev"),
        status=ProjectStatus(row.status),
        metadata=dict(row.metadata_json or {}),
        services=[
            ProjectService(service_type=ServiceType(s.service_type), enabled=s.enabled)
            for s in row.services
        ],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_step(row: ProvisioningStepModel) -> ProvisioningStep:
    return ProvisioningStep(
        id=row.id,
        project_id=row.project_id,
        step_name=row.step_name,
        status=StepStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        error_message=row.error_message,
        error_details=ErrorDetails.from_dict(row.error_details),
        retry_count=row.retry_count,
        created_at=row.created_at,
    )


# =========================================================================
# ProjectRepository -- public.projects / public.project_services
# =========================================================================

class SqlProjectRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, project_id: uuid.UUID) -> Optional[Project]:
        async with self._session_factory() as session:
            row = await session.get(ProjectModel, project_id)
            return _to_project(row) if row is not None else None

    async def list_by_status(self, status: ProjectStatus) -> list[Project]:
        stmt = (
            select(ProjectModel)
            .where(ProjectModel.status == status.value)
            .order_by(ProjectModel.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_project(row) for row in result.scalars().all()]

    async def update_status(self, project_id: uuid.UUID, status: ProjectStatus) -> None:
        stmt = (
            update(ProjectModel)
            .where(ProjectModel.id == project_id)
            .values(status=status.value, updated_at=func.now())
        )
        async with self._session_factory.begin() as session:
            await session.execute(stmt)

    async def merge_metadata(self, project_id: uuid.UUID, key: str, value: dict[str, Any]) -> None:
        # jsonb || keeps every other top-level key intact
        stmt = text(
            "UPDATE public.projects "
            "SET metadata = COALESCE(metadata, '{}'::jsonb) "
            "|| jsonb_build_object(CAST(:key AS text), CAST(:value AS jsonb)), "
            "updated_at = NOW() "
            "WHERE id = :project_id"
        )
        async with self._session_factory.begin() as session:
            await session.execute(
                stmt,
                {"key": key, "value": json.dumps(value, default=str), "project_id": project_id},
            )

    async def remove_metadata_key(self, project_id: uuid.UUID, key: str) -> None:
        stmt = text(
            "UPDATE public.projects "
            "SET metadata = COALESCE(metadata, '{}'::jsonb) - CAST(:key AS text), "
            "updated_at = NOW() "
            "WHERE id = :project_id"
        )
        async with self._session_factory.begin() as session:
            await session.execute(stmt, {"key": key, "project_id": project_id})


# =========================================================================
# ProvisioningStepRepository -- control_plane.provisioning_steps
# =========================================================================

class SqlProvisioningStepRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, project_id: uuid.UUID, step_name: str) -> Optional[ProvisioningStep]:
        stmt = select(ProvisioningStepModel).where(
            ProvisioningStepModel.project_id == project_id,
            ProvisioningStepModel.step_name == step_name,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return _to_step(row) if row is not None else None

    async def list_for_project(self, project_id: uuid.UUID) -> list[ProvisioningStep]:
        stmt = (
            select(ProvisioningStepModel)
            .where(ProvisioningStepModel.project_id == project_id)
            .order_by(ProvisioningStepModel.created_at, ProvisioningStepModel.step_name)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_step(row) for row in result.scalars().all()]

    async def upsert(self, step: ProvisioningStep) -> ProvisioningStep:
        values = {
            "status": step.status.value,
            "started_at": step.started_at,
            "completed_at": step.completed_at,
            "error_message": step.error_message,
            "error_details": step.error_details.to_dict() if step.error_details else None,
            "retry_count": step.retry_count,
        }
        stmt = (
            pg_insert(ProvisioningStepModel)
            .values(id=step.id, project_id=step.project_id, step_name=step.step_name, **values)
            .on_conflict_do_update(
                constraint="provisioning_steps_project_id_step_name_unique",
                set_=values,
            )
            .returning(ProvisioningStepModel)
        )
        async with self._session_factory.begin() as session:
            result = await session.execute(stmt)
            return _to_step(result.scalar_one())


# =========================================================================
# ApiKeyRepository -- control_plane.api_keys
# =========================================================================

class SqlApiKeyRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def count_for_project(self, project_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(ApiKeyModel).where(ApiKeyModel.project_id == project_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def add_many(self, keys: list[ApiKey]) -> None:
        async with self._session_factory.begin() as session:
            session.add_all(
                ApiKeyModel(
                    id=key.id,
                    project_id=key.project_id,
                    key_type=key.key_type.value,
                    key_prefix=key.key_prefix,
                    key_hash=key.key_hash,
                    scopes=list(key.scopes),
                )
                for key in keys
            )

    async def list_for_project(self, project_id: uuid.UUID) -> list[ApiKey]:
        stmt = select(ApiKeyModel).where(ApiKeyModel.project_id == project_id).order_by(ApiKeyModel.created_at)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                ApiKey(
                    id=row.id,
                    project_id=row.project_id,
                    key_type=ApiKeyType(row.key_type),
                    key_prefix=row.key_prefix,
                    key_hash=row.key_hash,
                    scopes=list(row.scopes),
                    created_at=row.created_at,
                )
                for row in result.scalars().all()
            ]


# =========================================================================
# Store facade
# =========================================================================

class SqlProvisioningStore:
    """PostgreSQL-backed :class:`application.ports.ProvisioningStore`.

    Parameters
    ----------
    engine:
        The shared :class:`AsyncEngine`.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        self.projects = SqlProjectRepository(session_factory)
        self.steps = SqlProvisioningStepRepository(session_factory)
        self.api_keys = SqlApiKeyRepository(session_factory)
        self.tenant_schemas = AsyncTenantSchemaManager(engine)

    async def ping(self) -> None:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    @asynccontextmanager
    async def step_lock(self, project_id: uuid.UUID, step_name: str) -> AsyncIterator[None]:
        """Session-level advisory lock on ``hashtextextended(project:step)``.

        Held on a dedicated connection for the whole block; released
        explicitly because pooled connections outlive the block.
        """
        key = f"{project_id}:{step_name}"
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT pg_advisory_lock(hashtextextended(:key, 0))"), {"key": key})
            await conn.commit()
            try:
                yield
            finally:
                await conn.execute(text("SELECT pg_advisory_unlock(hashtextextended(:key, 0))"), {"key": key})
                await conn.commit()
