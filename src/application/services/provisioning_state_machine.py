"""Provisioning step state machine.

``run_step`` drives one step through ``PENDING -> RUNNING -> SUCCESS |
FAILED`` and persists every transition. ``retry_step`` re-runs a failed
step within its catalog retry ceiling. Both are serialized per
``(project_id, step_name)`` through the store's step lock.

This is the only place that normalizes unexpected handler exceptions into
persisted failures; handlers report expected failures as structured
results.
"""

from __future__ import annotations

import logging
import time
import traceback
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

from domain.exceptions import (
    DomainException,
    MaxRetriesExceededError,
    ProjectNotFoundError,
    StepNotFoundError,
    UnknownStepError,
    ValidationError,
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
from domain.services import step_lifecycle
from domain.services.step_catalog import STEP_CATALOG, StepCatalog
from infrastructure.observability.logging_config import provisioning_context
from infrastructure.observability.metrics import record_retry, record_step_run

if TYPE_CHECKING:
    from application.ports import ProvisioningStore
    from application.provisioning.registry import HandlerRegistry, StepHandler

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _rejected(exc: DomainException, retry_count: int = 0, status: StepStatus = StepStatus.FAILED) -> StepRunResult:
    return StepRunResult(
        success=False,
        status=status,
        error=exc.detail,
        error_details=ErrorDetails(error_type=exc.kind, context=dict(exc.context), extra=dict(exc.extra)),
        retry_count=retry_count,
    )


def _exception_details(exc: BaseException, context: dict[str, Any]) -> ErrorDetails:
    return ErrorDetails(
        error_type=getattr(exc, "kind", type(exc).__name__),
        context=context,
        stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )


class ProvisioningStateMachine:
    """Runs and retries provisioning steps against a store.

    Parameters
    ----------
    store:
        Persistence facade; also handed to every handler.
    registry:
        Resolves a step name to its handler.
    catalog:
        Step definitions; the default catalog unless a test injects one.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        store: ProvisioningStore,
        registry: HandlerRegistry,
        catalog: StepCatalog = STEP_CATALOG,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._catalog = catalog
        self._clock = clock

    # -- commands ---------------------------------------------------------

    async def run_step(
        self,
        project_id: UUID,
        step_name: str | StepName,
        handler: Optional[StepHandler] = None,
    ) -> StepRunResult:
        """Execute one step; never raises for handler failures."""
        definition = self._catalog.get_step(step_name)
        if definition is None:
            return _rejected(UnknownStepError(str(getattr(step_name, "value", step_name)), str(project_id)))

        async with self._store.step_lock(project_id, definition.name.value):
            return await self._run_locked(project_id, definition, handler)

    async def retry_step(
        self,
        project_id: UUID,
        step_name: str | StepName,
        handler: Optional[StepHandler] = None,
    ) -> StepRunResult:
        """Re-run a failed step, incrementing its ``retry_count``."""
        definition = self._catalog.get_step(step_name)
        if definition is None:
            return _rejected(UnknownStepError(str(getattr(step_name, "value", step_name)), str(project_id)))

        name = definition.name.value
        async with self._store.step_lock(project_id, name):
            with provisioning_context(project_id, name, retry=True):
                return await self._retry_locked(project_id, definition, handler)

    # -- queries ----------------------------------------------------------

    async def get_step_status(self, project_id: UUID, step_name: str | StepName) -> Optional[ProvisioningStep]:
        return await self._store.steps.get(project_id, str(getattr(step_name, "value", step_name)))

    async def get_all_steps(self, project_id: UUID) -> list[ProvisioningStep]:
        """Persisted rows for the project in catalog order."""
        rows = await self._store.steps.list_for_project(project_id)
        order = {d.name.value: d.order for d in self._catalog.ordered_steps()}
        return sorted(rows, key=lambda r: (order.get(r.step_name, len(order) + 1), r.step_name))

    async def get_progress(self, project_id: UUID) -> ProvisioningProgress:
        rows = await self.get_all_steps(project_id)
        return ProvisioningProgress(
            project_id=project_id,
            percentage=step_lifecycle.calculate_progress(rows),
            complete=step_lifecycle.is_provisioning_complete(rows),
            failed=step_lifecycle.has_provisioning_failed(rows),
            next_pending_step=step_lifecycle.get_next_pending_step(rows, self._catalog),
            steps=rows,
        )

    # -- internals --------------------------------------------------------

    async def _run_locked(
        self,
        project_id: UUID,
        definition: ProvisioningStepDefinition,
        handler: Optional[StepHandler],
    ) -> StepRunResult:
        name = definition.name.value
        project = await self._store.projects.get_by_id(project_id)
        if project is None:
            return _rejected(ProjectNotFoundError(str(project_id)))

        with provisioning_context(project_id, name):
            row = await self._store.steps.get(project_id, name)
            if row is None:
                row = ProvisioningStep(project_id=project_id, step_name=name)

            started_at = self._clock()
            row.status = StepStatus.RUNNING
            row.started_at = started_at
            row.completed_at = None
            row.error_message = None
            row.error_details = None
            await self._store.steps.upsert(row)
            logger.info("Provisioning step %s started for project %s", name, project_id)

            step_handler = handler or self._registry.resolve(definition.name)
            timer = time.perf_counter()
            try:
                result = await step_handler(project_id, self._store)
            except Exception as exc:
                logger.exception("Provisioning step %s raised for project %s", name, project_id)
                result = StepExecutionResult.failure(
                    str(exc) or type(exc).__name__,
                    _exception_details(
                        exc,
                        {
                            "projectId": str(project_id),
                            "stepName": name,
                            "stepDescription": definition.description,
                            "stepOrder": definition.order,
                        },
                    ),
                )

            completed_at = self._clock()
            row.completed_at = completed_at
            if result.success:
                row.status = StepStatus.SUCCESS
            else:
                row.status = StepStatus.FAILED
                row.error_message = result.error
                row.error_details = result.error_details
            await self._store.steps.upsert(row)

            record_step_run(name, row.status.value, time.perf_counter() - timer)
            if result.success:
                logger.info("Provisioning step %s succeeded for project %s", name, project_id)
            else:
                logger.warning("Provisioning step %s failed for project %s: %s", name, project_id, result.error)

            return StepRunResult(
                success=result.success,
                status=row.status,
                error=result.error,
                error_details=result.error_details,
                started_at=started_at,
                completed_at=completed_at,
                retry_count=0,
                data=result.data,
            )

    async def _retry_locked(
        self,
        project_id: UUID,
        definition: ProvisioningStepDefinition,
        handler: Optional[StepHandler],
    ) -> StepRunResult:
        name = definition.name.value
        row = await self._store.steps.get(project_id, name)
        if row is None:
            return _rejected(StepNotFoundError(str(project_id), name))

        if row.status == StepStatus.SUCCESS:
            return StepRunResult(
                success=True,
                status=StepStatus.SUCCESS,
                error="Step already completed successfully",
                started_at=row.started_at,
                completed_at=row.completed_at,
                retry_count=row.retry_count,
            )

        if not definition.retryable:
            record_retry(name, "rejected")
            return _rejected(
                ValidationError(
                    f"Step {name} is not retryable",
                    context={"projectId": str(project_id), "stepName": name},
                ),
                retry_count=row.retry_count,
                status=row.status,
            )

        if row.retry_count >= definition.max_retries:
            record_retry(name, "exhausted")
            exhausted = _rejected(
                MaxRetriesExceededError(name, row.retry_count, definition.max_retries),
                retry_count=row.retry_count,
                status=row.status,
            )
            exhausted.max_retries_exceeded = True
            return exhausted

        new_count = row.retry_count + 1
        try:
            row.status = StepStatus.PENDING
            row.retry_count = new_count
            row.started_at = None
            row.completed_at = None
            row.error_message = None
            row.error_details = None
            await self._store.steps.upsert(row)
            logger.info("Retrying step %s for project %s (attempt %d/%d)", name, project_id, new_count, definition.max_retries)

            result = await self._run_locked(project_id, definition, handler)
        except Exception as exc:
            logger.exception("Retry of step %s failed unexpectedly for project %s", name, project_id)
            completed_at = self._clock()
            details = _exception_details(
                exc,
                {
                    "projectId": str(project_id),
                    "stepName": name,
                    "retryCount": new_count,
                    "maxRetries": definition.max_retries,
                },
            )
            row.status = StepStatus.FAILED
            row.completed_at = completed_at
            row.error_message = str(exc) or type(exc).__name__
            row.error_details = details
            await self._store.steps.upsert(row)
            record_retry(name, "error")
            return StepRunResult(
                success=False,
                status=StepStatus.FAILED,
                error=row.error_message,
                error_details=details,
                completed_at=completed_at,
                retry_count=new_count,
                max_retries_exceeded=new_count >= definition.max_retries,
            )

        record_retry(name, "success" if result.success else "failure")
        result.retry_count = new_count
        return result
