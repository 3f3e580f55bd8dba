from __future__ import annotations

from domain.models.project import VALID_STATE_TRANSITIONS, ProjectStatus


_TRANSITION_ACTIONS: dict[tuple[ProjectStatus, ProjectStatus], list[str]] = {
    (ProjectStatus.CREATED, ProjectStatus.ACTIVE): [
        "enable_api_access",
        "send_activation_notification",
    ],
    (ProjectStatus.CREATED, ProjectStatus.DELETED): [
        "cleanup_partial_provisioning",
        "send_cancellation_notification",
    ],
    (ProjectStatus.ACTIVE, ProjectStatus.SUSPENDED): [
        "disable_api_access",
        "send_suspension_notification",
    ],
    (ProjectStatus.ACTIVE, ProjectStatus.ARCHIVED): [
        "disable_api_access",
        "schedule_data_export",
    ],
    (ProjectStatus.ACTIVE, ProjectStatus.DELETED): [
        "disable_api_access",
        "revoke_api_keys",
        "send_deletion_confirmation",
    ],
    (ProjectStatus.SUSPENDED, ProjectStatus.ACTIVE): [
        "enable_api_access",
        "send_reactivation_notification",
    ],
    (ProjectStatus.SUSPENDED, ProjectStatus.ARCHIVED): [
        "schedule_data_export",
    ],
    (ProjectStatus.SUSPENDED, ProjectStatus.DELETED): [
        "revoke_api_keys",
        "send_deletion_confirmation",
    ],
}


class ProjectLifecycleService:

    def validate_transition(
        self,
        current_state: ProjectStatus,
        new_state: ProjectStatus,
    ) -> bool:
        allowed = VALID_STATE_TRANSITIONS.get(current_state, [])
        return new_state in allowed

    def get_transition_actions(
        self,
        current_state: ProjectStatus,
        new_state: ProjectStatus,
    ) -> list[str]:
        return list(_TRANSITION_ACTIONS.get((current_state, new_state), []))

    def is_terminal(self, state: ProjectStatus) -> bool:
        return not VALID_STATE_TRANSITIONS.get(state)
