from domain.exceptions.provisioning_exceptions import (
    ConfigurationError,
    DomainException,
    InvalidSlugError,
    InvalidStateTransitionError,
    MaxRetriesExceededError,
    NotFoundError,
    ProjectNotFoundError,
    ServiceConnectionError,
    ServiceError,
    ServiceHealthCheckError,
    StepNotFoundError,
    UnknownStepError,
    ValidationError,
)

__all__ = [
    "ConfigurationError",
    "DomainException",
    "InvalidSlugError",
    "InvalidStateTransitionError",
    "MaxRetriesExceededError",
    "NotFoundError",
    "ProjectNotFoundError",
    "ServiceConnectionError",
    "ServiceError",
    "ServiceHealthCheckError",
    "StepNotFoundError",
    "UnknownStepError",
    "ValidationError",
]
