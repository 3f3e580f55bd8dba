from __future__ import annotations

from typing import Any


class DomainException(Exception):
    """Base class for all domain-layer exceptions.

    Carries HTTP-mapping metadata so an outer layer can produce RFC 9457
    Problem Details without knowing exception internals, plus a ``kind``
    tag that is persisted as ``error_details.error_type`` when a
    provisioning step fails.
    """

    kind: str = "Error"

    def __init__(
        self,
        detail: str = "",
        *,
        title: str = "Domain Error",
        status_code: int = 400,
        error_type: str = "about:blank",
        context: dict[str, Any] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.title = title
        self.status_code = status_code
        self.error_type = error_type
        self.context: dict[str, Any] = dict(context or {})
        self.extra: dict[str, Any] = dict(extra or {})


class NotFoundError(DomainException):
    kind = "NotFoundError"

    def __init__(self, detail: str = "", *, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            detail=detail,
            title="Not Found",
            status_code=404,
            error_type="https://api.nodemesh.example/problems/not-found",
            context=context,
        )


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str = "") -> None:
        self.project_id = project_id
        super().__init__(
            detail=f"Project not found: {project_id}",
            context={"projectId": project_id},
        )


class StepNotFoundError(NotFoundError):
    def __init__(self, project_id: str = "", step_name: str = "") -> None:
        self.project_id = project_id
        self.step_name = step_name
        super().__init__(
            detail=f"Provisioning step not found: {step_name}",
            context={"projectId": project_id, "stepName": step_name},
        )


class ValidationError(DomainException):
    kind = "ValidationError"

    def __init__(self, detail: str = "", *, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            detail=detail,
            title="Validation Failed",
            status_code=422,
            error_type="https://api.nodemesh.example/problems/validation",
            context=context,
        )


class InvalidSlugError(ValidationError):
    def __init__(self, project_id: str = "", slug: str = "") -> None:
        self.slug = slug
        super().__init__(
            detail=f'Invalid slug format: "{slug}"',
            context={"projectId": project_id, "slug": slug},
        )


class UnknownStepError(ValidationError):
    def __init__(self, step_name: str = "", project_id: str | None = None) -> None:
        self.step_name = step_name
        context: dict[str, Any] = {"stepName": step_name}
        if project_id is not None:
            context["projectId"] = project_id
        super().__init__(detail=f"Unknown provisioning step: {step_name}", context=context)


class ConfigurationError(DomainException):
    kind = "ConfigurationError"

    def __init__(self, detail: str = "", *, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            detail=detail,
            title="Configuration Missing",
            status_code=500,
            error_type="https://api.nodemesh.example/problems/configuration",
            context=context,
        )


class ServiceError(DomainException):
    """A remote service answered with a non-OK HTTP status."""

    kind = "ServiceError"

    def __init__(
        self,
        service: str = "",
        status: int | None = None,
        reason: str = "",
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.service = service
        self.status = status
        super().__init__(
            detail=f"{service.capitalize()} service returned error: {status} {reason}".rstrip(),
            title="Upstream Service Error",
            status_code=502,
            error_type="https://api.nodemesh.example/problems/service-error",
            context=context,
            extra={"status": status},
        )


class ServiceConnectionError(DomainException):
    """A remote service could not be reached at all."""

    kind = "ConnectionError"

    def __init__(self, service: str = "", reason: str = "", *, context: dict[str, Any] | None = None) -> None:
        self.service = service
        super().__init__(
            detail=f"{service.capitalize()} service unavailable: {reason}".rstrip(": "),
            title="Upstream Service Unavailable",
            status_code=503,
            error_type="https://api.nodemesh.example/problems/service-unavailable",
            context=context,
        )


class ServiceHealthCheckError(DomainException):
    kind = "ServiceHealthCheckError"

    def __init__(
        self,
        unhealthy_services: list[str] | None = None,
        *,
        health_results: list[dict[str, Any]] | None = None,
        errors: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.unhealthy_services = list(unhealthy_services or [])
        super().__init__(
            detail=f"Some services are not ready: {', '.join(self.unhealthy_services)}",
            title="Services Not Ready",
            status_code=503,
            error_type="https://api.nodemesh.example/problems/service-health",
            context=context,
            extra={"health_results": list(health_results or []), "errors": list(errors or [])},
        )


class MaxRetriesExceededError(DomainException):
    kind = "MaxRetriesExceededError"

    def __init__(self, step_name: str = "", current_retry_count: int = 0, max_retries: int = 0) -> None:
        self.step_name = step_name
        self.current_retry_count = current_retry_count
        self.max_retries = max_retries
        super().__init__(
            detail=(
                f"Maximum retry attempts exceeded for step: {step_name} "
                f"({current_retry_count}/{max_retries})"
            ),
            title="Retry Limit Reached",
            status_code=409,
            error_type="https://api.nodemesh.example/problems/max-retries",
            context={
                "stepName": step_name,
                "currentRetryCount": current_retry_count,
                "maxRetries": max_retries,
            },
        )


class InvalidStateTransitionError(DomainException):
    kind = "ValidationError"

    def __init__(self, current_state: str = "", new_state: str = "") -> None:
        self.current_state = current_state
        self.new_state = new_state
        super().__init__(
            detail=f"Invalid state transition from {current_state} to {new_state}",
            title="Invalid State Transition",
            status_code=409,
            error_type="https://api.nodemesh.example/problems/invalid-transition",
        )
