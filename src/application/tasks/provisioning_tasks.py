"""Background Celery tasks that drive project provisioning.

The tasks are thin synchronous shells: each builds its coroutine from the
container's services and runs it on a fresh event loop. The ``run_*``
coroutines are importable on their own so callers that already own an
event loop can await them directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import asdict
from typing import Any, Optional, TypeVar
from uuid import UUID

from application.services.auto_status_transition import AutoStatusTransitionService
from application.services.provisioning_state_machine import ProvisioningStateMachine
from application.tasks.celery_app import app
from domain.models.provisioning import StepRunResult
from domain.services.step_catalog import STEP_CATALOG
from infrastructure.database.engine import dispose_engines

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _run(coro: Coroutine[Any, Any, _T]) -> _T:
    """Run *coro* on a fresh event loop and release pooled connections after."""

    async def _main() -> _T:
        try:
            return await coro
        finally:
            await dispose_engines()

    return asyncio.run(_main())


def _summarize(step_name: str, result: StepRunResult) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "step_name": step_name,
        "success": result.success,
        "status": result.status.value,
        "retry_count": result.retry_count,
    }
    if result.error:
        summary["error"] = result.error
    if result.max_retries_exceeded:
        summary["max_retries_exceeded"] = True
    return summary


async def run_provisioning(
    state_machine: ProvisioningStateMachine,
    project_id: UUID,
    start_at: Optional[str] = None,
) -> dict[str, Any]:
    """Run every catalog step in order, stopping at the first failure.

    *start_at* skips the steps ordered before it, so a partially
    provisioned project can be resumed.
    """
    steps = STEP_CATALOG.ordered_steps()
    if start_at is not None:
        names = [d.name.value for d in steps]
        if start_at in names:
            steps = steps[names.index(start_at):]

    completed: list[dict[str, Any]] = []
    for definition in steps:
        result = await state_machine.run_step(project_id, definition.name)
        completed.append(_summarize(definition.name.value, result))
        if not result.success:
            logger.warning(
                "Provisioning of project %s stopped at step %s: %s",
                project_id,
                definition.name.value,
                result.error,
            )
            return {"project_id": str(project_id), "status": "failed", "steps": completed}

    logger.info("Provisioning complete for project %s", project_id)
    return {"project_id": str(project_id), "status": "provisioned", "steps": completed}


async def run_auto_status_sweep(service: AutoStatusTransitionService) -> dict[str, Any]:
    return asdict(await service.run_auto_status_transitions_job())


@app.task(  # type: ignore[untyped-decorator]
    name="application.tasks.provisioning_tasks.provision_project_async",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
)
def provision_project_async(self: Any, project_id: str, start_at: Optional[str] = None) -> dict[str, Any]:
    """Provision a project by running its steps in catalog order.

    Step failures are persisted by the state machine and reported in the
    return value. Only infrastructure errors (store unreachable, lock
    failure) trigger a Celery retry.
    """
    from infrastructure.container import get_container

    logger.info("Starting async provisioning for project %s", project_id)
    try:
        container = get_container()
        return _run(run_provisioning(container.state_machine, UUID(project_id), start_at))
    except Exception as exc:
        logger.exception("Provisioning task crashed for project %s", project_id)
        raise self.retry(exc=exc) from exc


@app.task(  # type: ignore[untyped-decorator]
    name="application.tasks.provisioning_tasks.retry_provisioning_step_async",
    bind=True,
    max_retries=2,
    default_retry_delay=30,
)
def retry_provisioning_step_async(self: Any, project_id: str, step_name: str) -> dict[str, Any]:
    """Retry a single failed step."""
    from infrastructure.container import get_container

    logger.info("Retrying step %s for project %s", step_name, project_id)
    try:
        container = get_container()
        result = _run(container.state_machine.retry_step(UUID(project_id), step_name))
    except Exception as exc:
        logger.exception("Retry task crashed for step %s of project %s", step_name, project_id)
        raise self.retry(exc=exc) from exc
    return {"project_id": project_id, **_summarize(step_name, result)}


@app.task(  # type: ignore[untyped-decorator]
    name="application.tasks.provisioning_tasks.run_auto_status_transitions",
)
def run_auto_status_transitions() -> dict[str, Any]:
    """Periodic sweep: activation, quota suspension and quota reset."""
    from infrastructure.container import get_container

    summary = _run(run_auto_status_sweep(get_container().auto_status_transition))
    logger.info(
        "Auto status transitions: %d activated, %d suspended, %d resumed",
        summary["activation"]["projects_activated"],
        summary["suspension"]["projects_suspended"],
        summary["quota_reset"]["projects_resumed"],
    )
    return summary
