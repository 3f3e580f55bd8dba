from domain.models.api_key import ApiKey, ApiKeyType
from domain.models.health import ServiceHealthResult
from domain.models.project import (
    VALID_STATE_TRANSITIONS,
    Environment,
    Project,
    ProjectService,
    ProjectStatus,
    ServiceType,
)
from domain.models.provisioning import (
    ErrorDetails,
    ProvisioningProgress,
    ProvisioningStep,
    ProvisioningStepDefinition,
    StepExecutionResult,
    StepName,
    StepRunResult,
    StepStatus,
)

__all__ = [
    "VALID_STATE_TRANSITIONS",
    "ApiKey",
    "ApiKeyType",
    "Environment",
    "ErrorDetails",
    "Project",
    "ProjectService",
    "ProjectStatus",
    "ProvisioningProgress",
    "ProvisioningStep",
    "ProvisioningStepDefinition",
    "ServiceHealthResult",
    "ServiceType",
    "StepExecutionResult",
    "StepName",
    "StepRunResult",
    "StepStatus",
]
