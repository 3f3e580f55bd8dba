"""In-memory adapters implementing the provisioning store ports.

Used by unit tests and local wiring. Reads return copies, so callers
observe persisted state only through explicit writes, as with the SQL
store.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError, ProgrammingError

from domain.models.api_key import ApiKey
from domain.models.project import Project, ProjectStatus
from domain.models.provisioning import ProvisioningStep
from infrastructure.database.tenant_schema_manager import RLS_POLICIES, RLS_TABLES

logger = logging.getLogger(__name__)


class InMemoryProjectRepository:

    def __init__(self) -> None:
        self._store: dict[UUID, Project] = {}

    def add(self, project: Project) -> Project:
        self._store[project.id] = copy.deepcopy(project)
        return project

    async def get_by_id(self, project_id: UUID) -> Optional[Project]:
        project = self._store.get(project_id)
        return copy.deepcopy(project) if project is not None else None

    async def list_by_status(self, status: ProjectStatus) -> list[Project]:
        return [copy.deepcopy(p) for p in self._store.values() if p.status == status]

    async def update_status(self, project_id: UUID, status: ProjectStatus) -> None:
        project = self._store.get(project_id)
        if project is not None:
            project.status = status
            project.updated_at = datetime.now(UTC)

    async def merge_metadata(self, project_id: UUID, key: str, value: dict[str, Any]) -> None:
        project = self._store.get(project_id)
        if project is not None:
            project.metadata[key] = copy.deepcopy(value)
            project.updated_at = datetime.now(UTC)

    async def remove_metadata_key(self, project_id: UUID, key: str) -> None:
        project = self._store.get(project_id)
        if project is not None:
            project.metadata.pop(key, None)


class InMemoryProvisioningStepRepository:

    def __init__(self) -> None:
        self._store: dict[tuple[UUID, str], ProvisioningStep] = {}
        self.upserts: list[ProvisioningStep] = []

    async def get(self, project_id: UUID, step_name: str) -> Optional[ProvisioningStep]:
        row = self._store.get((project_id, step_name))
        return copy.deepcopy(row) if row is not None else None

    async def list_for_project(self, project_id: UUID) -> list[ProvisioningStep]:
        rows = [r for (pid, _), r in self._store.items() if pid == project_id]
        return [copy.deepcopy(r) for r in sorted(rows, key=lambda r: r.created_at)]

    async def upsert(self, step: ProvisioningStep) -> ProvisioningStep:
        key = (step.project_id, step.step_name)
        existing = self._store.get(key)
        row = copy.deepcopy(step)
        if existing is not None:
            row.id = existing.id
            row.created_at = existing.created_at
        self._store[key] = row
        self.upserts.append(copy.deepcopy(row))
        return copy.deepcopy(row)


class InMemoryApiKeyRepository:

    def __init__(self) -> None:
        self._store: list[ApiKey] = []

    async def count_for_project(self, project_id: UUID) -> int:
        return sum(1 for k in self._store if k.project_id == project_id)

    async def add_many(self, keys: list[ApiKey]) -> None:
        self._store.extend(copy.deepcopy(k) for k in keys)

    async def list_for_project(self, project_id: UUID) -> list[ApiKey]:
        return [copy.deepcopy(k) for k in self._store if k.project_id == project_id]


class InMemoryTenantSchemaManager:
    """Records tenant DDL effects instead of executing them.

    Creating tables in a missing schema raises the same
    :class:`sqlalchemy.exc.ProgrammingError` family PostgreSQL would.
    """

    def __init__(self) -> None:
        self.schemas: set[str] = set()
        self.grants: dict[str, set[str]] = defaultdict(set)
        self.tables: dict[str, set[str]] = defaultdict(set)
        self.policies: dict[str, set[str]] = defaultdict(set)
        self.rls_enabled: dict[str, set[str]] = defaultdict(set)

    async def create_schema(self, schema_name: str, grantee: Optional[str] = None) -> None:
        self.schemas.add(schema_name)
        if grantee:
            self.grants[schema_name].update({f"USAGE:{grantee}", f"CREATE:{grantee}"})

    async def create_tenant_tables(self, schema_name: str) -> None:
        if schema_name not in self.schemas:
            raise ProgrammingError(
                f'CREATE TABLE IF NOT EXISTS "{schema_name}".users',
                None,
                Exception(f'schema "{schema_name}" does not exist'),
            )
        self.tables[schema_name].update(RLS_TABLES)
        self.rls_enabled[schema_name].update(RLS_TABLES)
        self.policies[schema_name].update(name for name, *_ in RLS_POLICIES)

    async def schema_exists(self, schema_name: str) -> bool:
        return schema_name in self.schemas


class InMemoryProvisioningStore:
    """In-process :class:`application.ports.ProvisioningStore`.

    Set ``available = False`` to make :meth:`ping` fail like an unreachable
    database.
    """

    def __init__(self) -> None:
        self.projects = InMemoryProjectRepository()
        self.steps = InMemoryProvisioningStepRepository()
        self.api_keys = InMemoryApiKeyRepository()
        self.tenant_schemas = InMemoryTenantSchemaManager()
        self.available = True
        self._locks: dict[tuple[UUID, str], asyncio.Lock] = {}

    async def ping(self) -> None:
        if not self.available:
            raise OperationalError("SELECT 1", None, Exception("connection refused"))

    @asynccontextmanager
    async def step_lock(self, project_id: UUID, step_name: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault((project_id, step_name), asyncio.Lock())
        async with lock:
            yield


class MetadataQuotaMonitor:
    """Quota signals read from ``metadata["quota"] = {"caps": ..., "usage": ...}``.

    Every cap is a hard cap; usage strictly above it counts as exceeded.
    """

    async def exceeded_caps(self, project: Project) -> list[str]:
        quota = project.metadata.get("quota")
        if not isinstance(quota, dict):
            return []
        caps = quota.get("caps") or {}
        usage = quota.get("usage") or {}
        exceeded = []
        for name, cap in caps.items():
            if cap is None:
                continue
            if float(usage.get(name, 0)) > float(cap):
                exceeded.append(name)
        return sorted(exceeded)
