"""Shared fixtures for unit tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import UUID

import pytest

# Ensure src is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from application.provisioning.registry import HandlerRegistry, build_handler_registry
from application.services.auto_status_transition import AutoStatusTransitionService
from application.services.provisioning_state_machine import ProvisioningStateMachine
from domain.exceptions import ServiceConnectionError, ServiceError
from domain.models.health import ServiceHealthResult
from domain.models.project import Environment, Project, ProjectService, ProjectStatus, ServiceType
from infrastructure.adapters import InMemoryProvisioningStore, MetadataQuotaMonitor
from infrastructure.auth.api_key_handler import ApiKeyHandler
from infrastructure.settings import AppSettings

PROJECT_ID = UUID("00000000-0000-0000-0000-000000000001")
TENANT_ID = "tenant-0001"
NOW = datetime(2026, 2, 17, 12, 0, 0, tzinfo=timezone.utc)


class FakeHealthChecker:
    """Healthy for every service except those listed in ``unhealthy``."""

    def __init__(self) -> None:
        self.unhealthy: set[str] = set()
        self.calls: list[dict[str, Any]] = []

    async def check(
        self,
        service_name: str,
        url: str,
        timeout: float,
        headers: Optional[dict[str, str]] = None,
    ) -> ServiceHealthResult:
        self.calls.append({"service_name": service_name, "url": url, "timeout": timeout, "headers": headers})
        if service_name in self.unhealthy:
            return ServiceHealthResult(service_name=service_name, healthy=False, latency_ms=5, error="HTTP 503: Service Unavailable")
        return ServiceHealthResult(service_name=service_name, healthy=True, latency_ms=5)


class FakeAuthClient:
    """Scripted auth service: answers, refuses connections or rejects."""

    def __init__(self) -> None:
        self.configured = True
        self.mode = "ok"
        self.payloads: list[dict[str, Any]] = []

    async def create_tenant(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        if self.mode == "unreachable":
            raise ServiceConnectionError("auth", "connection refused", context={"createTenantUrl": "http://auth.test"})
        if self.mode == "rejected":
            raise ServiceError("auth", 502, "Bad Gateway", context={"createTenantUrl": "http://auth.test"})
        return {"tenant": {"id": "auth-tenant-1"}, "user": {"id": "auth-user-1"}}


@pytest.fixture
def project_id() -> UUID:
    return PROJECT_ID


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        auth_service_url="http://auth.test",
        realtime_service_url="http://realtime.test",
        telegram_storage_api_url="http://storage.test",
        telegram_storage_api_key="storage-key",
        database_user="provisioner",
        gateway_url_dev="http://gateway.dev.test",
        gateway_url="http://gateway.test",
        integration_test=False,
    )


@pytest.fixture
def store() -> InMemoryProvisioningStore:
    return InMemoryProvisioningStore()


@pytest.fixture
def make_project(store: InMemoryProvisioningStore) -> Callable[..., Project]:
    """Persist a project in the in-memory store and return it."""

    def _make(
        slug: str = "acme-corp",
        environment: Environment = Environment.DEV,
        status: ProjectStatus = ProjectStatus.CREATED,
        services: tuple[ServiceType, ...] = (ServiceType.AUTH, ServiceType.REALTIME, ServiceType.STORAGE),
        metadata: Optional[dict[str, Any]] = None,
        project_id: UUID = PROJECT_ID,
    ) -> Project:
        project = Project(
            id=project_id,
            name=slug.replace("-", " ").title(),
            slug=slug,
            tenant_id=TENANT_ID,
            environment=environment,
            status=status,
            metadata=dict(metadata or {}),
            services=[ProjectService(service_type=s) for s in services],
            created_at=NOW,
            updated_at=NOW,
        )
        return store.projects.add(project)

    return _make


@pytest.fixture
def health_checker() -> FakeHealthChecker:
    return FakeHealthChecker()


@pytest.fixture
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture
def key_handler() -> ApiKeyHandler:
    # Use lower cost for fast tests
    return ApiKeyHandler(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def auto_transition(store: InMemoryProvisioningStore) -> AutoStatusTransitionService:
    return AutoStatusTransitionService(store, MetadataQuotaMonitor())


@pytest.fixture
def registry(
    settings: AppSettings,
    health_checker: FakeHealthChecker,
    auth_client: FakeAuthClient,
    key_handler: ApiKeyHandler,
    auto_transition: AutoStatusTransitionService,
) -> HandlerRegistry:
    return build_handler_registry(
        settings,
        health_checker=health_checker,
        auth_client=auth_client,
        key_generator=key_handler,
        auto_transition=auto_transition,
    )


@pytest.fixture
def state_machine(store: InMemoryProvisioningStore, registry: HandlerRegistry) -> ProvisioningStateMachine:
    return ProvisioningStateMachine(store, registry, clock=lambda: NOW)
