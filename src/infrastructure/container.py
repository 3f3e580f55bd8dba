"""Dependency injection container for the provisioning control plane.

Wires the store, remote-service clients and application services
together. Celery tasks and tests obtain their collaborators here.
"""

from __future__ import annotations

import logging

from application.ports import ProvisioningStore
from application.provisioning.registry import HandlerRegistry, build_handler_registry
from application.services.auto_status_transition import AutoStatusTransitionService
from application.services.provisioning_state_machine import ProvisioningStateMachine
from domain.services.project_lifecycle import ProjectLifecycleService
from infrastructure.adapters import MetadataQuotaMonitor
from infrastructure.auth.api_key_handler import ApiKeyHandler
from infrastructure.clients.auth_service_client import AuthServiceClient
from infrastructure.database.engine import get_async_engine
from infrastructure.database.repository import SqlProvisioningStore
from infrastructure.health.health_checker import HttpHealthChecker
from infrastructure.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Central DI container that owns all service instances.

    Without an explicit *store* the container builds a PostgreSQL-backed
    :class:`SqlProvisioningStore` from the settings.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        store: ProvisioningStore | None = None,
        health_checker: HttpHealthChecker | None = None,
        auth_client: AuthServiceClient | None = None,
        key_handler: ApiKeyHandler | None = None,
    ) -> None:
        self.settings = settings or get_settings()

        # Infrastructure adapters
        self.store: ProvisioningStore = store or SqlProvisioningStore(
            get_async_engine(self.settings.database)
        )
        self.health_checker = health_checker or HttpHealthChecker()
        self.auth_client = auth_client or AuthServiceClient(
            self.settings.auth_service_url,
            timeout=self.settings.auth_service_timeout_seconds,
        )
        self.key_handler = key_handler or ApiKeyHandler()
        self.quota_monitor = MetadataQuotaMonitor()

        # Domain services
        self.lifecycle_service = ProjectLifecycleService()

        # Application services
        self.auto_status_transition = AutoStatusTransitionService(
            store=self.store,
            quota_monitor=self.quota_monitor,
            lifecycle=self.lifecycle_service,
        )
        self.handler_registry: HandlerRegistry = build_handler_registry(
            self.settings,
            health_checker=self.health_checker,
            auth_client=self.auth_client,
            key_generator=self.key_handler,
            auto_transition=self.auto_status_transition,
        )
        self.state_machine = ProvisioningStateMachine(self.store, self.handler_registry)

        logger.info("ServiceContainer initialized")


# Module-level singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Return the global container singleton."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """Reset the global container (for testing)."""
    global _container
    _container = None


def get_state_machine() -> ProvisioningStateMachine:
    return get_container().state_machine


def get_auto_status_transition_service() -> AutoStatusTransitionService:
    return get_container().auto_status_transition
