"""Step-name to handler dispatch.

The table is keyed by :class:`StepName`. :meth:`HandlerRegistry.resolve`
falls back to :func:`default_success_handler` for catalog steps that have
no dedicated handler registered.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Optional, Protocol
from uuid import UUID

from domain.exceptions import UnknownStepError
from domain.models.provisioning import StepExecutionResult, StepName
from domain.services.step_catalog import STEP_CATALOG, StepCatalog

from application.provisioning.handlers.api_keys import GenerateApiKeysHandler
from application.provisioning.handlers.service_registration import (
    RegisterAuthServiceHandler,
    RegisterRealtimeServiceHandler,
    RegisterStorageServiceHandler,
)
from application.provisioning.handlers.tenant_schema import (
    CreateTenantDatabaseHandler,
    CreateTenantSchemaHandler,
)
from application.provisioning.handlers.verify_services import VerifyServicesHandler

if TYPE_CHECKING:
    from application.ports import (
        ApiKeyGenerator,
        AuthRegistrationClient,
        HealthChecker,
        ProvisioningStore,
    )
    from application.services.auto_status_transition import AutoStatusTransitionService
    from infrastructure.settings import AppSettings

logger = logging.getLogger(__name__)


class StepHandler(Protocol):
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult: ...


async def default_success_handler(project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
    """Stand-in for catalog steps without a dedicated handler. Always succeeds."""
    logger.warning("No dedicated handler registered; default success handler used for project %s", project_id)
    return StepExecutionResult.ok()


def _coerce(step_name: str | StepName) -> Optional[StepName]:
    if isinstance(step_name, StepName):
        return step_name
    try:
        return StepName(step_name)
    except ValueError:
        return None


class HandlerRegistry:

    def __init__(
        self,
        handlers: Optional[Mapping[StepName, StepHandler]] = None,
        catalog: StepCatalog = STEP_CATALOG,
    ) -> None:
        self._handlers: dict[StepName, StepHandler] = dict(handlers or {})
        self._catalog = catalog

    def register(self, step_name: StepName, handler: StepHandler) -> None:
        self._handlers[step_name] = handler

    def has_handler(self, step_name: str | StepName) -> bool:
        name = _coerce(step_name)
        return name is not None and name in self._handlers

    def get_handler(self, step_name: str | StepName) -> StepHandler:
        name = _coerce(step_name)
        if name is None or name not in self._handlers:
            raise UnknownStepError(str(getattr(step_name, "value", step_name)))
        return self._handlers[name]

    def resolve(self, step_name: str | StepName) -> StepHandler:
        """Dedicated handler, else the default stand-in for catalog steps."""
        if self.has_handler(step_name):
            return self.get_handler(step_name)
        if not self._catalog.is_valid_step_name(step_name):
            raise UnknownStepError(str(getattr(step_name, "value", step_name)))
        return default_success_handler


def build_handler_registry(
    settings: AppSettings,
    health_checker: HealthChecker,
    auth_client: AuthRegistrationClient,
    key_generator: ApiKeyGenerator,
    auto_transition: Optional[AutoStatusTransitionService] = None,
) -> HandlerRegistry:
    return HandlerRegistry(
        {
            StepName.CREATE_TENANT_SCHEMA: CreateTenantSchemaHandler(settings.database_user),
            StepName.CREATE_TENANT_DATABASE: CreateTenantDatabaseHandler(),
            StepName.REGISTER_AUTH_SERVICE: RegisterAuthServiceHandler(settings, auth_client),
            StepName.REGISTER_REALTIME_SERVICE: RegisterRealtimeServiceHandler(settings, health_checker),
            StepName.REGISTER_STORAGE_SERVICE: RegisterStorageServiceHandler(settings, health_checker),
            StepName.GENERATE_API_KEYS: GenerateApiKeysHandler(key_generator),
            StepName.VERIFY_SERVICES: VerifyServicesHandler(settings, health_checker, auto_transition),
        }
    )
