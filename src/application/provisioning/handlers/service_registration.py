"""Handlers that register a project with the platform's shared services.

Each handler writes exactly one namespaced key of ``projects.metadata``.
With ``INTEGRATION_TEST`` enabled no remote call is made and deterministic
metadata is written instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID

from domain.exceptions import ConfigurationError, ServiceConnectionError
from domain.models.provisioning import StepExecutionResult, StepName

from application.provisioning.handlers.base import (
    environment_of,
    load_project,
    metadata_section,
    step_handler,
)
from application.schemas.project_metadata import (
    AuthServiceConfig,
    RealtimeServiceConfig,
    StorageServiceConfig,
)

if TYPE_CHECKING:
    from application.ports import AuthRegistrationClient, HealthChecker, ProvisioningStore
    from infrastructure.settings import AppSettings

logger = logging.getLogger(__name__)

MOCK_MAX_CONNECTIONS = 100
MOCK_MAX_FILE_SIZE = 50 * 1024 * 1024


class RegisterAuthServiceHandler:
    """Create the tenant in the auth service with a placeholder admin.

    An unreachable auth service does not fail provisioning; the step
    succeeds and registration can be repeated later. A non-2xx answer is a
    ``ServiceError`` failure.
    """

    step_name = StepName.REGISTER_AUTH_SERVICE

    def __init__(self, settings: AppSettings, auth_client: AuthRegistrationClient) -> None:
        self._settings = settings
        self._auth_client = auth_client

    @step_handler("register with auth service")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)

        if not self._auth_client.configured:
            raise ConfigurationError("AUTH_SERVICE_URL environment variable is not configured")

        existing = metadata_section(project, AuthServiceConfig.metadata_key)
        if existing.get("auth_tenant_id"):
            logger.info("Project %s already registered with auth service", project_id)
            return StepExecutionResult.ok({"auth_tenant_id": existing["auth_tenant_id"], "already_registered": True})

        environment = environment_of(project)
        admin_email = f"admin@{project.slug}.placeholder"
        payload = {
            "name": project.name or project.slug,
            "slug": project.slug,
            "adminEmail": admin_email,
            "adminPassword": f"{project.tenant_id}-{project.slug}-change-me",
            "adminName": "Admin",
        }

        if self._settings.integration_test:
            record = AuthServiceConfig(tenant_id=project.tenant_id, environment=environment)
            await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())
            return StepExecutionResult.ok()

        try:
            body = await self._auth_client.create_tenant(payload)
        except ServiceConnectionError as exc:
            logger.warning("Auth service not available for project %s: %s", project_id, exc.detail)
            return StepExecutionResult.ok({"auth_service_available": False})

        tenant = body.get("tenant") or {}
        user = body.get("user") or {}
        record = AuthServiceConfig(
            tenant_id=project.tenant_id,
            environment=environment,
            auth_tenant_id=str(tenant.get("id") or project.tenant_id),
            auth_user_id=str(user["id"]) if user.get("id") else None,
            placeholder_admin_email=admin_email,
        )
        await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())

        logger.info(
            "Auth service registration completed for project %s (tenant %s)",
            project_id,
            record.auth_tenant_id,
        )
        return StepExecutionResult.ok(
            {
                "auth_tenant_id": record.auth_tenant_id,
                "auth_user_id": record.auth_user_id,
                "placeholder_admin_email": admin_email,
            }
        )


class RegisterRealtimeServiceHandler:
    """Record the realtime channel prefix and service URL.

    The realtime service needs no explicit registration; the health probe
    is best-effort and only decides ``health_status``.
    """

    step_name = StepName.REGISTER_REALTIME_SERVICE

    def __init__(self, settings: AppSettings, health_checker: HealthChecker) -> None:
        self._settings = settings
        self._health_checker = health_checker

    @step_handler("register with realtime service")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)
        service_url = self._settings.resolve_realtime_service_url()
        channel_prefix = f"{project.tenant_id}:"
        environment = environment_of(project)

        if self._settings.integration_test:
            record = RealtimeServiceConfig(
                tenant_id=project.tenant_id,
                environment=environment,
                channel_prefix=channel_prefix,
                service_url=service_url,
                max_connections=MOCK_MAX_CONNECTIONS,
                health_status="ok",
            )
            await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())
            return StepExecutionResult.ok()

        health = await self._health_checker.check(
            "realtime",
            f"{service_url}/health",
            self._settings.health_check_timeout_seconds,
        )
        record = RealtimeServiceConfig(
            tenant_id=project.tenant_id,
            environment=environment,
            channel_prefix=channel_prefix,
            service_url=service_url,
            health_status="ok" if health.healthy else "unknown",
        )
        await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())

        logger.info("Realtime service registration completed for project %s (%s)", project_id, service_url)
        return StepExecutionResult.ok(
            {
                "channel_prefix": channel_prefix,
                "service_url": service_url,
                "health_status": record.health_status,
            }
        )


class RegisterStorageServiceHandler:
    """Check storage credentials and record the tenant's storage prefix.

    Storage backends (Telegram storage API, Cloudinary) are shared by all
    tenants; at least one must be configured.
    """

    step_name = StepName.REGISTER_STORAGE_SERVICE

    def __init__(self, settings: AppSettings, health_checker: HealthChecker) -> None:
        self._settings = settings
        self._health_checker = health_checker

    @step_handler("register with storage service")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)
        telegram = self._settings.storage_telegram_configured
        cloudinary = self._settings.storage_cloudinary_configured

        if not (telegram or cloudinary):
            raise ConfigurationError(
                "No storage service credentials configured. "
                "Please set TELEGRAM_STORAGE_API_URL/KEY or CLOUDINARY_CLOUD_NAME"
            )

        path_prefix = f"{project.tenant_id}/"
        environment = environment_of(project)

        if self._settings.integration_test:
            record = StorageServiceConfig(
                tenant_id=project.tenant_id,
                environment=environment,
                bucket_prefix=path_prefix,
                max_file_size=MOCK_MAX_FILE_SIZE,
                telegram_enabled=True,
                cloudinary_enabled=True,
            )
            await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())
            return StepExecutionResult.ok()

        if telegram:
            health = await self._health_checker.check(
                "storage",
                f"{self._settings.telegram_storage_api_url}/health",
                self._settings.health_check_timeout_seconds,
                headers={"Authorization": f"Bearer {self._settings.telegram_storage_api_key}"},
            )
            if health.healthy:
                logger.info("Telegram storage API is accessible")

        record = StorageServiceConfig(
            tenant_id=project.tenant_id,
            environment=environment,
            storage_path_prefix=path_prefix,
            telegram_enabled=telegram,
            cloudinary_enabled=cloudinary,
        )
        await store.projects.merge_metadata(project_id, record.metadata_key, record.to_metadata())

        logger.info(
            "Storage service registration completed for project %s (telegram=%s, cloudinary=%s)",
            project_id,
            telegram,
            cloudinary,
        )
        data: dict[str, Any] = {
            "telegram_enabled": telegram,
            "cloudinary_enabled": cloudinary,
            "storage_path_prefix": path_prefix,
        }
        return StepExecutionResult.ok(data)
