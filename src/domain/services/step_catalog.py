"""Ordered catalog of provisioning steps.

The catalog is static: seven steps run in a fixed linear order for every
project. A :class:`StepCatalog` instance can be built with a custom list of
definitions for tests; the module-level helpers delegate to the default
:data:`STEP_CATALOG`.
"""

from __future__ import annotations

from collections.abc import Iterable

from domain.models.provisioning import ProvisioningStepDefinition, StepName


DEFAULT_STEP_DEFINITIONS: tuple[ProvisioningStepDefinition, ...] = (
    ProvisioningStepDefinition(
        name=StepName.CREATE_TENANT_SCHEMA,
        description="Create isolated PostgreSQL schema for tenant",
        order=1,
        estimated_duration_ms=2000,
    ),
    ProvisioningStepDefinition(
        name=StepName.CREATE_TENANT_DATABASE,
        description="Create tenant tables and row-level security policies",
        order=2,
        estimated_duration_ms=3000,
    ),
    ProvisioningStepDefinition(
        name=StepName.REGISTER_AUTH_SERVICE,
        description="Register tenant with the auth service",
        order=3,
        estimated_duration_ms=1500,
    ),
    ProvisioningStepDefinition(
        name=StepName.REGISTER_REALTIME_SERVICE,
        description="Register tenant with the realtime service",
        order=4,
        estimated_duration_ms=1500,
    ),
    ProvisioningStepDefinition(
        name=StepName.REGISTER_STORAGE_SERVICE,
        description="Configure tenant storage",
        order=5,
        estimated_duration_ms=1500,
    ),
    ProvisioningStepDefinition(
        name=StepName.GENERATE_API_KEYS,
        description="Generate public, secret and service-role API keys",
        order=6,
        estimated_duration_ms=1000,
    ),
    ProvisioningStepDefinition(
        name=StepName.VERIFY_SERVICES,
        description="Verify all provisioned services are healthy",
        order=7,
        estimated_duration_ms=5000,
        max_retries=5,
    ),
)


def _coerce(name: str | StepName) -> StepName | None:
    if isinstance(name, StepName):
        return name
    try:
        return StepName(name)
    except ValueError:
        return None


class StepCatalog:

    def __init__(self, definitions: Iterable[ProvisioningStepDefinition] = DEFAULT_STEP_DEFINITIONS) -> None:
        self._definitions: dict[StepName, ProvisioningStepDefinition] = {
            d.name: d for d in definitions
        }

    def get_step(self, name: str | StepName) -> ProvisioningStepDefinition | None:
        step_name = _coerce(name)
        if step_name is None:
            return None
        return self._definitions.get(step_name)

    def ordered_steps(self) -> list[ProvisioningStepDefinition]:
        return sorted(self._definitions.values(), key=lambda d: d.order)

    def is_valid_step_name(self, name: str | StepName) -> bool:
        return self.get_step(name) is not None

    def is_retryable(self, name: str | StepName, current_retry_count: int) -> bool:
        definition = self.get_step(name)
        if definition is None or not definition.retryable:
            return False
        return current_retry_count < definition.max_retries

    def get_remaining_retries(self, name: str | StepName, current_retry_count: int) -> int:
        definition = self.get_step(name)
        if definition is None or not definition.retryable:
            return 0
        return max(0, definition.max_retries - current_retry_count)

    def can_retry_step(self, name: str | StepName, current_retry_count: int) -> bool:
        return self.get_remaining_retries(name, current_retry_count) > 0


STEP_CATALOG = StepCatalog()


def get_step(name: str | StepName) -> ProvisioningStepDefinition | None:
    return STEP_CATALOG.get_step(name)


def ordered_steps() -> list[ProvisioningStepDefinition]:
    return STEP_CATALOG.ordered_steps()


def is_valid_step_name(name: str | StepName) -> bool:
    return STEP_CATALOG.is_valid_step_name(name)


def is_retryable(name: str | StepName, current_retry_count: int) -> bool:
    return STEP_CATALOG.is_retryable(name, current_retry_count)


def get_remaining_retries(name: str | StepName, current_retry_count: int) -> int:
    return STEP_CATALOG.get_remaining_retries(name, current_retry_count)


def can_retry_step(name: str | StepName, current_retry_count: int) -> bool:
    return STEP_CATALOG.can_retry_step(name, current_retry_count)
