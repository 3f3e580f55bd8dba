"""Integration tests for AsyncTenantSchemaManager -- requires PostgreSQL.

These tests exercise the idempotent tenant DDL and the provisioning state
machine against a real database.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from application.provisioning.handlers.tenant_schema import (
    CreateTenantDatabaseHandler,
    CreateTenantSchemaHandler,
)
from application.provisioning.registry import HandlerRegistry
from application.services.provisioning_state_machine import ProvisioningStateMachine
from domain.models.provisioning import StepName, StepStatus
from infrastructure.database.tenant_schema_manager import AsyncTenantSchemaManager

pytestmark = pytest.mark.integration


class TestAsyncTenantSchemaManager:

    async def test_create_schema_is_idempotent(self, engine):
        mgr = AsyncTenantSchemaManager(engine)
        await mgr.create_schema("tenant_int-test")
        await mgr.create_schema("tenant_int-test")

        assert await mgr.schema_exists("tenant_int-test") is True
        assert await mgr.list_schemas() == ["tenant_int-test"]

    async def test_tables_and_policies_survive_reruns(self, engine):
        mgr = AsyncTenantSchemaManager(engine)
        await mgr.create_schema("tenant_rls-test")
        await mgr.create_tenant_tables("tenant_rls-test")
        await mgr.create_tenant_tables("tenant_rls-test")

        async with engine.connect() as conn:
            tables = await conn.execute(
                text("SELECT tablename FROM pg_tables WHERE schemaname = :s ORDER BY tablename"),
                {"s": "tenant_rls-test"},
            )
            policies = await conn.execute(
                text("SELECT count(*) FROM pg_policies WHERE schemaname = :s"),
                {"s": "tenant_rls-test"},
            )
            assert [row[0] for row in tables.fetchall()] == ["_migrations", "audit_log", "users"]
            assert policies.scalar_one() == 7

    async def test_rejects_unsafe_schema_name(self, engine):
        with pytest.raises(ValueError):
            await AsyncTenantSchemaManager(engine).create_schema('tenant_x"; DROP SCHEMA public; --')


class TestStateMachineAgainstPostgres:

    async def test_ddl_steps(self, sql_store, project_id):
        registry = HandlerRegistry(
            {
                StepName.CREATE_TENANT_SCHEMA: CreateTenantSchemaHandler(),
                StepName.CREATE_TENANT_DATABASE: CreateTenantDatabaseHandler(),
            }
        )
        machine = ProvisioningStateMachine(sql_store, registry)

        for name in (StepName.CREATE_TENANT_SCHEMA, StepName.CREATE_TENANT_DATABASE, StepName.CREATE_TENANT_SCHEMA):
            result = await machine.run_step(project_id, name)
            assert result.success is True, result.error

        rows = await machine.get_all_steps(project_id)
        assert [(r.step_name, r.status) for r in rows] == [
            ("create_tenant_schema", StepStatus.SUCCESS),
            ("create_tenant_database", StepStatus.SUCCESS),
        ]
        assert await sql_store.tenant_schemas.schema_exists("tenant_acme-corp") is True
