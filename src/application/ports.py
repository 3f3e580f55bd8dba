"""Persistence and infrastructure ports used by the provisioning core.

Handlers and services depend only on these Protocols. The SQLAlchemy
store in ``infrastructure.database.repository`` and the in-memory store in
``infrastructure.adapters`` both satisfy them.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Optional, Protocol
from uuid import UUID

from domain.models.api_key import ApiKey, ApiKeyType
from domain.models.health import ServiceHealthResult
from domain.models.project import Project, ProjectStatus
from domain.models.provisioning import ProvisioningStep


class ProjectRepository(Protocol):
    """Port: read access to projects plus status and metadata writes."""

    async def get_by_id(self, project_id: UUID) -> Optional[Project]: ...

    async def list_by_status(self, status: ProjectStatus) -> list[Project]: ...

    async def update_status(self, project_id: UUID, status: ProjectStatus) -> None: ...

    async def merge_metadata(self, project_id: UUID, key: str, value: dict[str, Any]) -> None:
        """Set ``metadata[key] = value`` leaving every other key untouched."""
        ...

    async def remove_metadata_key(self, project_id: UUID, key: str) -> None: ...


class ProvisioningStepRepository(Protocol):
    """Port: one row per ``(project_id, step_name)``."""

    async def get(self, project_id: UUID, step_name: str) -> Optional[ProvisioningStep]: ...

    async def list_for_project(self, project_id: UUID) -> list[ProvisioningStep]: ...

    async def upsert(self, step: ProvisioningStep) -> ProvisioningStep:
        """Insert the row or, on ``(project_id, step_name)`` conflict, overwrite
        status, timestamps, error fields and retry count."""
        ...


class ApiKeyRepository(Protocol):
    async def count_for_project(self, project_id: UUID) -> int: ...

    async def add_many(self, keys: list[ApiKey]) -> None: ...


class TenantSchemaManager(Protocol):
    """Port: idempotent tenant DDL."""

    async def create_schema(self, schema_name: str, grantee: Optional[str] = None) -> None: ...

    async def create_tenant_tables(self, schema_name: str) -> None: ...

    async def schema_exists(self, schema_name: str) -> bool: ...


class ProvisioningStore(Protocol):
    """Facade handed to every step handler."""

    projects: ProjectRepository
    steps: ProvisioningStepRepository
    api_keys: ApiKeyRepository
    tenant_schemas: TenantSchemaManager

    async def ping(self) -> None:
        """Round-trip the backing store; raise on failure."""
        ...

    def step_lock(self, project_id: UUID, step_name: str) -> AbstractAsyncContextManager[None]:
        """Serialize work on a single ``(project_id, step_name)`` pair."""
        ...


class QuotaMonitor(Protocol):
    """Port: hard-cap quota signals for a project."""

    async def exceeded_caps(self, project: Project) -> list[str]:
        """Names of hard caps the project's usage currently exceeds."""
        ...


class HealthChecker(Protocol):
    """Port: bounded HTTP health probe that never raises."""

    async def check(
        self,
        service_name: str,
        url: str,
        timeout: float,
        headers: Optional[dict[str, str]] = None,
    ) -> ServiceHealthResult: ...


class AuthRegistrationClient(Protocol):
    """Port: auth-service tenant registration."""

    @property
    def configured(self) -> bool: ...

    async def create_tenant(self, payload: dict[str, Any]) -> dict[str, Any]: ...


class ApiKeyGenerator(Protocol):
    def generate_key(self, environment: str, key_type: ApiKeyType) -> str: ...

    def hash_key(self, plain_key: str) -> str: ...

    def preview(self, plain_key: str) -> str: ...
