"""Unit tests for ProvisioningStateMachine: run, retry, ceilings and progress."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

from application.services.provisioning_state_machine import ProvisioningStateMachine
from domain.models.project import Environment, ProjectStatus
from domain.models.provisioning import (
    ErrorDetails,
    ProvisioningStepDefinition,
    StepExecutionResult,
    StepName,
    StepStatus,
)
from domain.services.step_catalog import StepCatalog

NOW = datetime(2026, 2, 17, 12, 0, 0, tzinfo=timezone.utc)


class SpyHandler:
    """Records invocations and answers with a scripted result."""

    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.calls = 0

    async def __call__(self, project_id, store) -> StepExecutionResult:
        self.calls += 1
        if self.success:
            return StepExecutionResult.ok({"call": self.calls})
        return StepExecutionResult.failure(
            "remote rejected",
            ErrorDetails(error_type="ServiceError", context={"projectId": str(project_id)}),
        )


class RaisingHandler:
    async def __call__(self, project_id, store) -> StepExecutionResult:
        raise RuntimeError("boom")


class TestRunStepPreconditions:

    async def test_unknown_step_fails_validation_and_writes_nothing(self, state_machine, store, make_project, project_id):
        make_project()
        result = await state_machine.run_step(project_id, "bogus_step")

        assert result.success is False
        assert result.status == StepStatus.FAILED
        assert result.error_details.error_type == "ValidationError"
        assert result.error_details.context["stepName"] == "bogus_step"
        assert store.steps.upserts == []

    async def test_missing_project_fails_not_found_and_writes_nothing(self, state_machine, store):
        result = await state_machine.run_step(uuid4(), StepName.CREATE_TENANT_SCHEMA)

        assert result.success is False
        assert result.error_details.error_type == "NotFoundError"
        assert store.steps.upserts == []


class TestRunStep:

    async def test_success_persists_running_then_success(self, state_machine, store, make_project, project_id):
        make_project()
        result = await state_machine.run_step(project_id, "create_tenant_schema")

        assert result.success is True
        assert result.status == StepStatus.SUCCESS
        assert result.started_at == NOW
        assert result.completed_at == NOW
        assert result.retry_count == 0
        assert result.data == {"schema_name": "tenant_acme-corp"}
        assert [u.status for u in store.steps.upserts] == [StepStatus.RUNNING, StepStatus.SUCCESS]

        row = await state_machine.get_step_status(project_id, StepName.CREATE_TENANT_SCHEMA)
        assert row.status == StepStatus.SUCCESS
        assert row.error_message is None

    async def test_structured_failure_is_persisted_verbatim(self, state_machine, make_project, project_id):
        make_project(slug="My Project")
        result = await state_machine.run_step(project_id, "create_tenant_schema")

        assert result.success is False
        assert result.status == StepStatus.FAILED
        row = await state_machine.get_step_status(project_id, "create_tenant_schema")
        assert row.status == StepStatus.FAILED
        assert row.error_message == 'Invalid slug format: "My Project"'
        assert row.error_details.error_type == "ValidationError"
        assert row.error_details.context["slug"] == "My Project"

    async def test_handler_exception_is_normalized(self, state_machine, make_project, project_id):
        make_project()
        result = await state_machine.run_step(project_id, "register_auth_service", handler=RaisingHandler())

        assert result.success is False
        assert result.status == StepStatus.FAILED
        assert result.error == "boom"
        details = result.error_details
        assert details.error_type == "RuntimeError"
        assert "boom" in details.stack_trace
        assert details.context == {
            "projectId": str(project_id),
            "stepName": "register_auth_service",
            "stepDescription": "Register tenant with the auth service",
            "stepOrder": 3,
        }
        row = await state_machine.get_step_status(project_id, "register_auth_service")
        assert row.status == StepStatus.FAILED
        assert row.error_message == "boom"

    async def test_rerun_of_success_step_invokes_handler_again(self, state_machine, make_project, project_id):
        make_project()
        spy = SpyHandler()
        await state_machine.run_step(project_id, "generate_api_keys", handler=spy)
        result = await state_machine.run_step(project_id, "generate_api_keys", handler=spy)

        assert result.success is True
        assert spy.calls == 2

    async def test_run_always_reports_zero_retries(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "generate_api_keys", handler=SpyHandler(success=False))
        await state_machine.retry_step(project_id, "generate_api_keys", handler=SpyHandler(success=False))

        result = await state_machine.run_step(project_id, "generate_api_keys", handler=SpyHandler())
        assert result.retry_count == 0
        row = await state_machine.get_step_status(project_id, "generate_api_keys")
        assert row.retry_count == 1

    async def test_rerun_after_failure_clears_error_fields(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "generate_api_keys", handler=SpyHandler(success=False))
        await state_machine.run_step(project_id, "generate_api_keys", handler=SpyHandler())

        row = await state_machine.get_step_status(project_id, "generate_api_keys")
        assert row.status == StepStatus.SUCCESS
        assert row.error_message is None
        assert row.error_details is None


class TestRetryStep:

    async def test_unknown_step_fails_validation(self, state_machine, store, make_project, project_id):
        make_project()
        result = await state_machine.retry_step(project_id, "bogus_step")

        assert result.success is False
        assert result.error_details.error_type == "ValidationError"
        assert store.steps.upserts == []

    async def test_missing_row_fails_not_found(self, state_machine, store):
        result = await state_machine.retry_step(uuid4(), "create_tenant_schema")

        assert result.success is False
        assert result.error_details.error_type == "NotFoundError"
        assert store.steps.upserts == []

    async def test_retry_of_success_step_is_a_no_op(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "create_tenant_schema")
        spy = SpyHandler()

        result = await state_machine.retry_step(project_id, "create_tenant_schema", handler=spy)

        assert result.success is True
        assert result.status == StepStatus.SUCCESS
        assert result.retry_count == 0
        assert spy.calls == 0

    async def test_successful_retry_increments_count(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "register_auth_service", handler=SpyHandler(success=False))

        result = await state_machine.retry_step(project_id, "register_auth_service", handler=SpyHandler())

        assert result.success is True
        assert result.status == StepStatus.SUCCESS
        assert result.retry_count == 1
        assert result.max_retries_exceeded is False
        row = await state_machine.get_step_status(project_id, "register_auth_service")
        assert row.retry_count == 1
        assert row.status == StepStatus.SUCCESS

    async def test_retry_ceiling(self, state_machine, make_project, project_id):
        make_project()
        spy = SpyHandler(success=False)
        await state_machine.run_step(project_id, "register_auth_service", handler=spy)

        for attempt in (1, 2, 3):
            result = await state_machine.retry_step(project_id, "register_auth_service", handler=spy)
            assert result.success is False
            assert result.retry_count == attempt
            assert result.max_retries_exceeded is False

        result = await state_machine.retry_step(project_id, "register_auth_service", handler=spy)

        assert result.success is False
        assert result.max_retries_exceeded is True
        assert result.retry_count == 3
        assert result.error_details.error_type == "MaxRetriesExceededError"
        assert result.error_details.context["currentRetryCount"] == 3
        assert result.error_details.context["maxRetries"] == 3
        assert spy.calls == 4
        row = await state_machine.get_step_status(project_id, "register_auth_service")
        assert row.retry_count == 3

    async def test_verify_services_allows_five_retries(self, state_machine, make_project, project_id):
        make_project()
        spy = SpyHandler(success=False)
        await state_machine.run_step(project_id, "verify_services", handler=spy)
        for _ in range(5):
            await state_machine.retry_step(project_id, "verify_services", handler=spy)

        result = await state_machine.retry_step(project_id, "verify_services", handler=spy)
        assert result.max_retries_exceeded is True
        assert result.retry_count == 5

    async def test_non_retryable_step_is_rejected(self, store, registry, make_project, project_id):
        catalog = StepCatalog(
            [
                ProvisioningStepDefinition(
                    name=StepName.CREATE_TENANT_SCHEMA,
                    description="schema",
                    order=1,
                    estimated_duration_ms=10,
                    retryable=False,
                )
            ]
        )
        machine = ProvisioningStateMachine(store, registry, catalog=catalog, clock=lambda: NOW)
        make_project(slug="Bad Slug")
        await machine.run_step(project_id, "create_tenant_schema")

        result = await machine.retry_step(project_id, "create_tenant_schema")

        assert result.success is False
        assert result.error_details.error_type == "ValidationError"
        row = await machine.get_step_status(project_id, "create_tenant_schema")
        assert row.retry_count == 0

    async def test_exception_during_retry_forces_failed(self, state_machine, store, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "register_auth_service", handler=SpyHandler(success=False))

        async def broken_lookup(_project_id):
            raise RuntimeError("store went away")

        store.projects.get_by_id = broken_lookup
        result = await state_machine.retry_step(project_id, "register_auth_service")

        assert result.success is False
        assert result.status == StepStatus.FAILED
        assert result.retry_count == 1
        assert result.max_retries_exceeded is False
        assert result.error == "store went away"
        assert result.error_details.context["retryCount"] == 1
        assert result.error_details.context["maxRetries"] == 3
        row = await store.steps.get(project_id, "register_auth_service")
        assert row.status == StepStatus.FAILED
        assert row.retry_count == 1

    async def test_concurrent_retries_run_the_handler_once(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "register_auth_service", handler=SpyHandler(success=False))
        spy = SpyHandler()

        first, second = await asyncio.gather(
            state_machine.retry_step(project_id, "register_auth_service", handler=spy),
            state_machine.retry_step(project_id, "register_auth_service", handler=spy),
        )

        assert first.success and second.success
        assert spy.calls == 1
        row = await state_machine.get_step_status(project_id, "register_auth_service")
        assert row.retry_count == 1


class TestQueries:

    async def test_get_all_steps_in_catalog_order(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "generate_api_keys", handler=SpyHandler())
        await state_machine.run_step(project_id, "create_tenant_schema")

        names = [row.step_name for row in await state_machine.get_all_steps(project_id)]
        assert names == ["create_tenant_schema", "generate_api_keys"]

    async def test_progress(self, state_machine, make_project, project_id):
        make_project()
        await state_machine.run_step(project_id, "create_tenant_schema")
        await state_machine.run_step(project_id, "create_tenant_database", handler=SpyHandler(success=False))

        progress = await state_machine.get_progress(project_id)

        assert progress.percentage == 50
        assert progress.complete is False
        assert progress.failed is True
        assert progress.next_pending_step == "register_auth_service"
        assert len(progress.steps) == 2


class TestEndToEnd:

    async def test_acme_corp_provisions_and_activates(self, state_machine, store, make_project, project_id, health_checker):
        make_project(slug="acme-corp", environment=Environment.PROD)

        for name in list(StepName)[:6]:
            result = await state_machine.run_step(project_id, name)
            assert result.success is True, (name, result.error)

        project = await store.projects.get_by_id(project_id)
        assert project.status == ProjectStatus.CREATED

        result = await state_machine.run_step(project_id, StepName.VERIFY_SERVICES)

        assert result.success is True
        assert result.status == StepStatus.SUCCESS
        project = await store.projects.get_by_id(project_id)
        assert project.status == ProjectStatus.ACTIVE
        assert {"auth_service", "realtime_service", "storage_service", "api_keys"} <= set(project.metadata)
        assert any(c["url"] == "http://gateway.test/internal/health" for c in health_checker.calls)

        rerun = await state_machine.run_step(project_id, StepName.CREATE_TENANT_SCHEMA)
        assert rerun.success is True
        project = await store.projects.get_by_id(project_id)
        assert project.status == ProjectStatus.ACTIVE
        assert store.tenant_schemas.schemas == {"tenant_acme-corp"}

    async def test_unhealthy_service_fails_verification_and_keeps_status(self, state_machine, store, make_project, project_id, health_checker):
        make_project(slug="acme-corp", environment=Environment.PROD)
        for name in list(StepName)[:6]:
            await state_machine.run_step(project_id, name)
        health_checker.unhealthy = {"auth"}

        result = await state_machine.run_step(project_id, StepName.VERIFY_SERVICES)

        assert result.success is False
        assert result.error_details.error_type == "ServiceHealthCheckError"
        assert result.error_details.extra["errors"] == ["Auth: HTTP 503: Service Unavailable"]
        project = await store.projects.get_by_id(project_id)
        assert project.status == ProjectStatus.CREATED
