"""Tests for src/domain/services/project_lifecycle.py"""

import pytest

from domain.models.project import ProjectStatus
from domain.services.project_lifecycle import ProjectLifecycleService


@pytest.fixture
def service():
    return ProjectLifecycleService()


class TestValidateTransition:
    @pytest.mark.parametrize(
        "current, new",
        [
            (ProjectStatus.CREATED, ProjectStatus.ACTIVE),
            (ProjectStatus.CREATED, ProjectStatus.DELETED),
            (ProjectStatus.ACTIVE, ProjectStatus.SUSPENDED),
            (ProjectStatus.ACTIVE, ProjectStatus.ARCHIVED),
            (ProjectStatus.ACTIVE, ProjectStatus.DELETED),
            (ProjectStatus.SUSPENDED, ProjectStatus.ACTIVE),
            (ProjectStatus.SUSPENDED, ProjectStatus.ARCHIVED),
            (ProjectStatus.SUSPENDED, ProjectStatus.DELETED),
        ],
    )
    def test_valid_transitions(self, service, current, new):
        assert service.validate_transition(current, new) is True

    @pytest.mark.parametrize(
        "current, new",
        [
            (ProjectStatus.CREATED, ProjectStatus.SUSPENDED),
            (ProjectStatus.CREATED, ProjectStatus.ARCHIVED),
            (ProjectStatus.ACTIVE, ProjectStatus.CREATED),
            (ProjectStatus.ARCHIVED, ProjectStatus.ACTIVE),
            (ProjectStatus.DELETED, ProjectStatus.ACTIVE),
            (ProjectStatus.ACTIVE, ProjectStatus.ACTIVE),
        ],
    )
    def test_invalid_transitions(self, service, current, new):
        assert service.validate_transition(current, new) is False


class TestGetTransitionActions:
    def test_created_to_active(self, service):
        assert service.get_transition_actions(ProjectStatus.CREATED, ProjectStatus.ACTIVE) == [
            "enable_api_access",
            "send_activation_notification",
        ]

    def test_active_to_suspended(self, service):
        assert "disable_api_access" in service.get_transition_actions(ProjectStatus.ACTIVE, ProjectStatus.SUSPENDED)

    def test_unknown_pair_returns_empty(self, service):
        assert service.get_transition_actions(ProjectStatus.DELETED, ProjectStatus.ACTIVE) == []

    def test_returns_a_copy(self, service):
        actions = service.get_transition_actions(ProjectStatus.CREATED, ProjectStatus.ACTIVE)
        actions.append("mutated")
        assert "mutated" not in service.get_transition_actions(ProjectStatus.CREATED, ProjectStatus.ACTIVE)


class TestIsTerminal:
    @pytest.mark.parametrize("state", [ProjectStatus.ARCHIVED, ProjectStatus.DELETED])
    def test_terminal_states(self, service, state):
        assert service.is_terminal(state) is True

    @pytest.mark.parametrize("state", [ProjectStatus.CREATED, ProjectStatus.ACTIVE, ProjectStatus.SUSPENDED])
    def test_non_terminal_states(self, service, state):
        assert service.is_terminal(state) is False
