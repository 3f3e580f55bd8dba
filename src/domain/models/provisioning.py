from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


class StepName(str, enum.Enum):
    CREATE_TENANT_SCHEMA = "create_tenant_schema"
    CREATE_TENANT_DATABASE = "create_tenant_database"
    REGISTER_AUTH_SERVICE = "register_auth_service"
    REGISTER_REALTIME_SERVICE = "register_realtime_service"
    REGISTER_STORAGE_SERVICE = "register_storage_service"
    GENERATE_API_KEYS = "generate_api_keys"
    VERIFY_SERVICES = "verify_services"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ProvisioningStepDefinition:
    name: StepName
    description: str
    order: int
    estimated_duration_ms: int
    retryable: bool = True
    max_retries: int = 3


@dataclass
class ErrorDetails:
    """Structured error payload persisted in ``provisioning_steps.error_details``.

    ``extra`` carries handler-specific keys (``health_results``, ``errors``,
    ``status``...) which are flattened next to the standard keys on
    serialisation.
    """

    error_type: str
    context: dict[str, Any] = field(default_factory=dict)
    stack_trace: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error_type": self.error_type, "context": dict(self.context)}
        if self.stack_trace:
            payload["stack_trace"] = self.stack_trace
        payload.update(self.extra)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> ErrorDetails | None:
        if not payload:
            return None
        data = dict(payload)
        error_type = str(data.pop("error_type", "Error"))
        context = data.pop("context", None) or {}
        stack_trace = data.pop("stack_trace", None)
        return cls(error_type=error_type, context=context, stack_trace=stack_trace, extra=data)


@dataclass
class ProvisioningStep:
    project_id: UUID
    step_name: str
    status: StepStatus = StepStatus.PENDING
    id: UUID = field(default_factory=uuid4)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    error_details: ErrorDetails | None = None
    retry_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class StepExecutionResult:
    """Value returned by every step handler."""

    success: bool
    error: str | None = None
    error_details: ErrorDetails | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> StepExecutionResult:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_details: ErrorDetails) -> StepExecutionResult:
        return cls(success=False, error=error, error_details=error_details)


@dataclass
class StepRunResult:
    """Outcome of a state-machine run or retry."""

    success: bool
    status: StepStatus
    error: str | None = None
    error_details: ErrorDetails | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    retry_count: int = 0
    max_retries_exceeded: bool = False
    data: dict[str, Any] | None = None


@dataclass
class ProvisioningProgress:
    project_id: UUID
    percentage: int
    complete: bool
    failed: bool
    next_pending_step: str | None
    steps: list[ProvisioningStep] = field(default_factory=list)
