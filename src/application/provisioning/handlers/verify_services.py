"""Final step: probe everything the project depends on."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from domain.exceptions import ServiceHealthCheckError
from domain.models.health import ServiceHealthResult
from domain.models.project import ServiceType
from domain.models.provisioning import StepExecutionResult, StepName

from application.provisioning.handlers.base import environment_of, load_project, step_handler

if TYPE_CHECKING:
    from application.ports import HealthChecker, ProvisioningStore
    from application.services.auto_status_transition import AutoStatusTransitionService
    from infrastructure.settings import AppSettings

logger = logging.getLogger(__name__)

_LABELS: dict[str, str] = {
    "database": "Database",
    "api_gateway": "API Gateway",
    ServiceType.AUTH.value: "Auth",
    ServiceType.REALTIME.value: "Realtime",
    ServiceType.STORAGE.value: "Storage",
    ServiceType.GRAPHQL.value: "GraphQL",
}


class VerifyServicesHandler:
    """Probe the database, the API gateway and every enabled service.

    When every probe is healthy the step succeeds and the project is
    offered to the auto-activation check; a failure there is logged and
    never fails this step. Otherwise the step fails with
    ``ServiceHealthCheckError`` listing each probe's result.
    """

    step_name = StepName.VERIFY_SERVICES

    def __init__(
        self,
        settings: AppSettings,
        health_checker: HealthChecker,
        auto_transition: Optional[AutoStatusTransitionService] = None,
    ) -> None:
        self._settings = settings
        self._health_checker = health_checker
        self._auto_transition = auto_transition

    @step_handler("verify services")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)
        enabled = [s for s in ServiceType if s in project.enabled_services]
        base_url = self._settings.gateway_base_url(environment_of(project))

        results = [await self._check_database(store)]
        probes = [
            self._health_checker.check(
                "api_gateway",
                f"{base_url}/internal/health",
                self._settings.gateway_health_timeout_seconds,
            )
        ]
        probes.extend(
            self._health_checker.check(
                service.value,
                f"{base_url}/api/v1/health/{service.value}",
                self._settings.health_check_timeout_seconds,
            )
            for service in enabled
        )
        results.extend(await asyncio.gather(*probes))

        unhealthy = [r for r in results if not r.healthy]
        if unhealthy:
            raise ServiceHealthCheckError(
                [r.service_name for r in unhealthy],
                health_results=[r.to_dict() for r in results],
                errors=[
                    f"{_LABELS.get(r.service_name, r.service_name)}: {r.error or 'Health check failed'}"
                    for r in unhealthy
                ],
                context={
                    "projectSlug": project.slug,
                    "enabledServices": [s.value for s in enabled],
                },
            )

        if self._auto_transition is not None:
            try:
                await self._auto_transition.maybe_activate(
                    project_id,
                    completing_step=self.step_name,
                )
            except Exception:
                logger.exception("Failed to auto-transition project %s status", project_id)

        return StepExecutionResult.ok({"health_results": [r.to_dict() for r in results]})

    @staticmethod
    async def _check_database(store: ProvisioningStore) -> ServiceHealthResult:
        started = time.perf_counter()
        try:
            await store.ping()
        except Exception as exc:
            return ServiceHealthResult(service_name="database", healthy=False, error=str(exc) or type(exc).__name__)
        latency_ms = int((time.perf_counter() - started) * 1000)
        return ServiceHealthResult(service_name="database", healthy=True, latency_ms=latency_ms)
