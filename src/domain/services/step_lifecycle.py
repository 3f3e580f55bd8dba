"""Per-step status transitions and aggregate progress over a project's steps."""

from __future__ import annotations

from collections.abc import Sequence

from domain.models.provisioning import ProvisioningStep, StepStatus
from domain.services.step_catalog import STEP_CATALOG, StepCatalog


VALID_STEP_TRANSITIONS: dict[StepStatus, list[StepStatus]] = {
    StepStatus.PENDING: [StepStatus.RUNNING, StepStatus.SKIPPED],
    StepStatus.RUNNING: [StepStatus.SUCCESS, StepStatus.FAILED],
    StepStatus.FAILED: [StepStatus.RUNNING],
    StepStatus.SUCCESS: [],
    StepStatus.SKIPPED: [],
}

_DONE_STATUSES = frozenset({StepStatus.SUCCESS, StepStatus.SKIPPED})


def is_valid_state_transition(current: StepStatus, new: StepStatus) -> bool:
    return new in VALID_STEP_TRANSITIONS.get(current, [])


def calculate_progress(steps: Sequence[ProvisioningStep]) -> int:
    """Percentage of steps that are done (success or skipped), rounded."""
    if not steps:
        return 0
    done = sum(1 for s in steps if s.status in _DONE_STATUSES)
    return round(done / len(steps) * 100)


def is_provisioning_complete(steps: Sequence[ProvisioningStep]) -> bool:
    if not steps:
        return False
    return all(s.status in _DONE_STATUSES for s in steps)


def has_provisioning_failed(steps: Sequence[ProvisioningStep]) -> bool:
    return any(s.status == StepStatus.FAILED for s in steps)


def get_next_pending_step(
    steps: Sequence[ProvisioningStep],
    catalog: StepCatalog = STEP_CATALOG,
) -> str | None:
    """First catalog step with no row yet or a row still in PENDING."""
    by_name = {s.step_name: s for s in steps}
    for definition in catalog.ordered_steps():
        row = by_name.get(definition.name.value)
        if row is None or row.status == StepStatus.PENDING:
            return definition.name.value
    return None
