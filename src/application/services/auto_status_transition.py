"""Automatic project status transitions driven by provisioning and quotas.

* ``created -> active`` once every persisted provisioning step is done.
* ``active -> suspended`` when a hard quota cap is exceeded.
* ``suspended -> active`` once an automatic suspension's caps are clear.

Manual suspensions (no ``automatic`` flag in the ``suspension`` metadata
record) are never lifted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from domain.models.project import Project, ProjectStatus
from domain.models.provisioning import StepName
from domain.services import step_lifecycle
from domain.services.project_lifecycle import ProjectLifecycleService
from infrastructure.observability.metrics import record_status_transition

from application.schemas.project_metadata import SuspensionRecord

if TYPE_CHECKING:
    from application.ports import ProvisioningStore, QuotaMonitor

logger = logging.getLogger(__name__)


@dataclass
class ActivationSweepResult:
    projects_checked: int = 0
    projects_activated: int = 0
    activated_projects: list[str] = field(default_factory=list)
    failed_provisioning: int = 0


@dataclass
class SuspensionSweepResult:
    projects_checked: int = 0
    projects_suspended: int = 0
    suspended_projects: list[str] = field(default_factory=list)


@dataclass
class QuotaResetResult:
    projects_checked: int = 0
    projects_resumed: int = 0
    resumed_projects: list[str] = field(default_factory=list)


@dataclass
class AutoStatusTransitionsResult:
    activation: ActivationSweepResult
    suspension: SuspensionSweepResult
    quota_reset: QuotaResetResult


class AutoStatusTransitionService:

    def __init__(
        self,
        store: ProvisioningStore,
        quota_monitor: QuotaMonitor,
        lifecycle: Optional[ProjectLifecycleService] = None,
    ) -> None:
        self._store = store
        self._quota_monitor = quota_monitor
        self._lifecycle = lifecycle or ProjectLifecycleService()

    async def maybe_activate(
        self,
        project_id: UUID,
        completing_step: Optional[StepName] = None,
    ) -> bool:
        """Move a CREATED project to ACTIVE if its provisioning is complete.

        *completing_step* names a step whose handler is still running (its
        row is RUNNING) and that has already reported success; it is left
        out of the completeness check.
        """
        project = await self._store.projects.get_by_id(project_id)
        if project is None or project.status != ProjectStatus.CREATED:
            return False

        rows = await self._store.steps.list_for_project(project_id)
        if completing_step is not None:
            rows = [r for r in rows if r.step_name != completing_step.value]
        if not step_lifecycle.is_provisioning_complete(rows):
            return False

        return await self._transition(project, ProjectStatus.ACTIVE)

    async def run_auto_activation_job(self) -> ActivationSweepResult:
        result = ActivationSweepResult()
        for project in await self._store.projects.list_by_status(ProjectStatus.CREATED):
            result.projects_checked += 1
            try:
                rows = await self._store.steps.list_for_project(project.id)
                if step_lifecycle.has_provisioning_failed(rows):
                    result.failed_provisioning += 1
                    continue
                if step_lifecycle.is_provisioning_complete(rows) and await self._transition(
                    project, ProjectStatus.ACTIVE
                ):
                    result.projects_activated += 1
                    result.activated_projects.append(str(project.id))
            except Exception:
                logger.exception("Auto-activation check failed for project %s", project.id)

        logger.info(
            "Auto-activation sweep checked %d projects, activated %d",
            result.projects_checked,
            result.projects_activated,
        )
        return result

    async def run_suspension_check(self) -> SuspensionSweepResult:
        result = SuspensionSweepResult()
        for project in await self._store.projects.list_by_status(ProjectStatus.ACTIVE):
            result.projects_checked += 1
            try:
                exceeded = await self._quota_monitor.exceeded_caps(project)
                if not exceeded:
                    continue
                if await self._transition(project, ProjectStatus.SUSPENDED):
                    record = SuspensionRecord(automatic=True, exceeded_caps=sorted(exceeded))
                    await self._store.projects.merge_metadata(project.id, record.metadata_key, record.to_metadata())
                    result.projects_suspended += 1
                    result.suspended_projects.append(str(project.id))
                    logger.warning("Project %s suspended; hard caps exceeded: %s", project.id, ", ".join(exceeded))
            except Exception:
                logger.exception("Suspension check failed for project %s", project.id)
        return result

    async def run_quota_reset(self) -> QuotaResetResult:
        result = QuotaResetResult()
        for project in await self._store.projects.list_by_status(ProjectStatus.SUSPENDED):
            result.projects_checked += 1
            try:
                suspension = project.metadata.get(SuspensionRecord.metadata_key)
                if not isinstance(suspension, dict) or not suspension.get("automatic"):
                    continue
                if await self._quota_monitor.exceeded_caps(project):
                    continue
                if await self._transition(project, ProjectStatus.ACTIVE):
                    await self._store.projects.remove_metadata_key(project.id, SuspensionRecord.metadata_key)
                    result.projects_resumed += 1
                    result.resumed_projects.append(str(project.id))
            except Exception:
                logger.exception("Quota reset failed for project %s", project.id)
        return result

    async def run_auto_status_transitions_job(self) -> AutoStatusTransitionsResult:
        activation = await self.run_auto_activation_job()
        suspension = await self.run_suspension_check()
        quota_reset = await self.run_quota_reset()
        return AutoStatusTransitionsResult(activation=activation, suspension=suspension, quota_reset=quota_reset)

    async def _transition(self, project: Project, new_status: ProjectStatus) -> bool:
        if not self._lifecycle.validate_transition(project.status, new_status):
            logger.info(
                "Transition %s -> %s not permitted for project %s",
                project.status.value,
                new_status.value,
                project.id,
            )
            return False
        await self._store.projects.update_status(project.id, new_status)
        record_status_transition(project.status.value, new_status.value)
        logger.info(
            "Project %s transitioned from %s to %s",
            project.id,
            project.status.value,
            new_status.value,
        )
        return True
